from typing import Any, Dict, NamedTuple, Optional

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
PDF_EXTENSIONS = {"pdf"}


class DocumentPreview(NamedTuple):
    kind: Optional[str]  # 'image', 'pdf', 'other'; None when the document can't be shown
    url: Optional[str] = None
    title: str = "Document"
    error: Optional[str] = None


def file_kind(url: str, document_type: Optional[str] = None) -> str:
    """Classify by the URL's extension first, then by the document type label."""
    extension = url.rsplit(".", 1)[-1].lower() if "." in url else ""
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if extension in PDF_EXTENSIONS:
        return "pdf"

    label = (document_type or "").lower()
    if "photo" in label or "image" in label:
        return "image"
    if "pdf" in label:
        return "pdf"
    return "other"


def preview_document(document: Optional[Dict[str, Any]]) -> DocumentPreview:
    if not document or not document.get("document_url"):
        return DocumentPreview(kind=None, error="Document not found or URL is missing")

    url = document["document_url"]
    document_type = document.get("document_type")
    return DocumentPreview(kind=file_kind(url, document_type), url=url, title=document_type or "Document")
