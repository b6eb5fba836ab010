from unittest.mock import MagicMock

from skillswap.db.firebase_ops import FirestoreBaseModel


def _ops_with_document(exists: bool):
    ops = FirestoreBaseModel.__new__(FirestoreBaseModel)
    ops.db = MagicMock()
    doc_ref = ops.db.collection.return_value.document.return_value
    snapshot = doc_ref.get.return_value
    snapshot.exists = exists
    snapshot.id = "profile1"
    snapshot.to_dict.return_value = {"bio": "old"}
    return ops, doc_ref


def test_save_existing_document_leaves_created_at_alone():
    ops, doc_ref = _ops_with_document(exists=True)

    assert ops.save("freelancer_profiles", {"bio": "new"}, document_id="profile1") == "profile1"

    written, = doc_ref.set.call_args.args
    assert "created_at" not in written
    assert "updated_at" in written
    assert doc_ref.set.call_args.kwargs == {"merge": True}


def test_save_new_document_stamps_created_at():
    ops, doc_ref = _ops_with_document(exists=False)

    assert ops.save("freelancer_profiles", {"bio": "new"}, document_id="profile1") == "profile1"

    written, = doc_ref.set.call_args.args
    assert written["created_at"] == written["updated_at"]


def test_save_without_id_generates_one():
    ops, doc_ref = _ops_with_document(exists=False)

    document_id = ops.save("projects", {"title": "Logo"})

    assert len(document_id) == 24
    assert "created_at" in doc_ref.set.call_args.args[0]
    doc_ref.get.assert_not_called()
