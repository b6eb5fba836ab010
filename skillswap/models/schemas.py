import re
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

Role = Literal["client", "freelancer", "admin"]
AccountStatus = Literal["active", "suspended", "deactivated"]
ProjectStatus = Literal["open", "in_progress", "completed", "cancelled"]
BidStatus = Literal["pending", "accepted", "rejected", "withdrawn"]
CounterOfferStatus = Literal["none", "pending", "accepted", "rejected"]
VerificationStatus = Literal["pending", "approved", "rejected"]
VerificationLevel = Literal["Basic", "Verified", "Premium"]
NotificationType = Literal["bid", "project", "message", "verification", "system"]

# Document ids are 24 hex characters (see generate_object_id)
OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def is_object_id(value: Optional[str]) -> bool:
    return bool(value) and OBJECT_ID_PATTERN.match(value) is not None


# --- Users ---

class Address(BaseModel):
    country: Optional[str] = None

class UserBase(BaseModel):
    name: str
    email: EmailStr
    role: Role
    phone: Optional[str] = None
    address: Optional[Address] = None

class UserCreate(UserBase):
    password: str = Field(min_length=6)

class User(UserBase):
    id: str
    is_verified: bool = False
    account_status: AccountStatus = "active"
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

class UserSummary(BaseModel):
    """Public view of another user (participants, bid authors, project owners)."""
    id: str
    name: str
    email: Optional[EmailStr] = None
    role: Optional[Role] = None

class UserUpdate(BaseModel):
    # Fields an admin may edit; unset fields are left alone
    name: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    status: Optional[AccountStatus] = None

class UserStatusUpdate(BaseModel):
    is_active: bool

# --- Auth payloads ---

class EmailVerification(BaseModel):
    token: str

class ForgotPasswordRequest(BaseModel):
    email: EmailStr

class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(min_length=6)

class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)

# --- Profiles ---

class Skill(BaseModel):
    name: str
    level: Optional[str] = None # e.g. 'beginner', 'intermediate', 'expert'
    years_of_experience: Optional[int] = None

class VerificationDocument(BaseModel):
    id: str
    document_type: str
    document_url: Optional[str] = None
    status: VerificationStatus = "pending"
    notes: Optional[str] = None
    uploaded_at: Optional[datetime] = None

class VerificationDocumentCreate(BaseModel):
    document_type: str
    document_url: str

class ClientProfile(BaseModel):
    user_id: str
    company: Optional[str] = None
    website: Optional[str] = None
    bio: Optional[str] = None
    projects_posted: int = 0

class FreelancerProfile(BaseModel):
    user_id: str
    title: Optional[str] = None
    skills: List[Skill] = []
    bio: Optional[str] = None
    hourly_rate: Optional[float] = None
    verification_status: VerificationStatus = "pending"
    verification_level: VerificationLevel = "Basic"
    verification_notes: Optional[str] = None
    verification_documents: List[VerificationDocument] = []
    work_experience: List[Dict[str, Any]] = []
    completed_projects: int = 0
    average_rating: float = 0.0
    availability: Optional[str] = None
    created_at: Optional[datetime] = None

class FreelancerWithUser(FreelancerProfile):
    user: Optional[UserSummary] = None

class ProfileUpdate(BaseModel):
    # Shared by clients and freelancers; fields that don't apply to the caller's role are ignored
    company: Optional[str] = None
    website: Optional[str] = None
    bio: Optional[str] = None
    title: Optional[str] = None
    skills: Optional[List[Skill]] = None
    hourly_rate: Optional[float] = None
    work_experience: Optional[List[Dict[str, Any]]] = None
    availability: Optional[str] = None

# --- Projects ---

class ProjectBase(BaseModel):
    title: str
    description: str
    category: Optional[str] = None
    skills: List[str] = []
    budget: float = Field(ge=0)
    deadline: Optional[datetime] = None

class ProjectCreate(ProjectBase):
    pass

class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    skills: Optional[List[str]] = None
    budget: Optional[float] = Field(default=None, ge=0)
    deadline: Optional[datetime] = None

class Project(ProjectBase):
    id: str
    client_id: str # User id of the owning client
    assigned_freelancer_id: Optional[str] = None # User id of the hired freelancer
    status: ProjectStatus = "open"
    bid_ids: List[str] = []
    progress: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus
    reason: Optional[str] = None

class ProjectProgressUpdate(BaseModel):
    progress: int = Field(ge=0, le=100)

# --- Bids ---

class CounterOffer(BaseModel):
    amount: Optional[float] = None
    delivery_time: Optional[int] = None # days
    message: Optional[str] = None
    status: CounterOfferStatus = "none"

class CounterOfferCreate(BaseModel):
    amount: float = Field(gt=0)
    delivery_time: int = Field(gt=0)
    message: str = Field(min_length=1)

class CounterOfferResponse(BaseModel):
    response: str # 'accept' or 'reject'

class BidBase(BaseModel):
    amount: float = Field(gt=0)
    delivery_time: int = Field(gt=0) # days
    proposal: str = Field(min_length=1)

class BidCreate(BidBase):
    pass

class BidUpdate(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    delivery_time: Optional[int] = Field(default=None, gt=0)
    proposal: Optional[str] = None

class Bid(BidBase):
    id: str
    project_id: str
    freelancer_id: str # User id of the bidding freelancer
    status: BidStatus = "pending"
    counter_offer: CounterOffer = Field(default_factory=CounterOffer)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class BidFreelancer(BaseModel):
    id: str
    name: str
    rating: float = 0.0
    completed_projects: int = 0

class BidWithFreelancer(Bid):
    freelancer: Optional[BidFreelancer] = None

class BidWithProject(Bid):
    project: Optional[Dict[str, Any]] = None # {id, title, budget, status}

# --- Messaging ---

class Attachment(BaseModel):
    name: str
    url: str
    type: Optional[str] = None

class ConversationCreate(BaseModel):
    participant_id: str
    project_id: Optional[str] = None

class Conversation(BaseModel):
    id: str
    participants: List[str]
    project_id: Optional[str] = None
    last_message_id: Optional[str] = None
    unread_count: Dict[str, int] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ConversationView(BaseModel):
    """A conversation as seen by one participant."""
    id: str
    participants: List[UserSummary]
    other_participants: List[UserSummary]
    project: Optional[Dict[str, Any]] = None # {id, title}
    last_message: Optional[Dict[str, Any]] = None
    unread_count: int = 0
    updated_at: Optional[datetime] = None

class MessageCreate(BaseModel):
    content: str = ""
    metadata: Optional[str] = None # Raw client provenance blob; stored only as a digest

class Message(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str = ""
    attachments: List[Attachment] = []
    metadata: Optional[str] = None # SHA-256 hex digest
    read_status: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class MessagePage(BaseModel):
    messages: List[Message]
    total_pages: int
    current_page: int
    total: int

# --- Notifications ---

class Notification(BaseModel):
    id: str
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    related_id: Optional[str] = None
    related_model: Optional[str] = None
    read: bool = False
    created_at: Optional[datetime] = None

# --- Admin ---

class FreelancerVerify(BaseModel):
    action: Optional[str] = None # 'approve', 'reject'; anything else resets to pending
    verification_level: Optional[VerificationLevel] = None
    verification_notes: Optional[str] = None
    document_ids: Optional[List[str]] = None

class FreelancerReject(BaseModel):
    reason: Optional[str] = None
    document_ids: Optional[List[str]] = None

class DocumentVerify(BaseModel):
    status: VerificationStatus
    notes: Optional[str] = None

class BulkVerify(BaseModel):
    freelancer_ids: List[str] = []
    action: Optional[str] = None
