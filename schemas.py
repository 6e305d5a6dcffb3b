"""
Database Schemas for CollabMate

Each Pydantic model corresponds to a MongoDB collection. The collection name
is the lowercase class name (e.g., User -> "user"). References to other
documents are stored as id strings.
"""
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

DEFAULT_AVATAR = "https://cdn.pixabay.com/photo/2015/10/05/22/37/blank-profile-picture-973460_960_720.png"

UserRole = Literal['user', 'moderator', 'admin']
SkillLevel = Literal['beginner', 'intermediate', 'advanced', 'expert']
ProjectStatus = Literal['active', 'completed', 'archived', 'pending', 'inProgress']
CollaborationStatus = Literal['pending', 'accepted', 'rejected', 'removed']
CollaborationRole = Literal['viewer', 'editor', 'admin']
MessageType = Literal['message', 'notification', 'system']
MessageStatus = Literal['active', 'archived', 'deleted', 'flagged']
EventType = Literal['meeting', 'deadline', 'milestone', 'other']

PROJECT_STATUSES = ('active', 'completed', 'archived', 'pending', 'inProgress')
COLLABORATION_ROLES = ('viewer', 'editor', 'admin')

# ------------------ Embedded documents ------------------

class Skill(BaseModel):
    name: str
    level: SkillLevel = 'beginner'
    verified: bool = False


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True


class Preferences(BaseModel):
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    theme: Literal['light', 'dark', 'system'] = 'system'
    language: str = 'en'


class AIPreferences(BaseModel):
    suggestionFrequency: Literal['low', 'medium', 'high'] = 'medium'
    projectRecommendations: bool = True
    skillMatching: bool = True


class Activity(BaseModel):
    lastActive: Optional[datetime] = None
    loginCount: int = 0
    projectCount: int = 0
    messageCount: int = 0


class AIToolUsage(BaseModel):
    count: int = 0
    lastUsed: Optional[datetime] = None


class AIUsage(BaseModel):
    totalRequests: int = 0
    lastUsed: Optional[datetime] = None
    tools: Dict[str, AIToolUsage] = {}


class ProjectCollaborator(BaseModel):
    user: str
    role: CollaborationRole = 'editor'


class Attachment(BaseModel):
    filePath: str  # public url, e.g. /uploads/messages/123-file.pdf
    fileName: str
    originalName: str
    mimetype: str
    size: int


class Reaction(BaseModel):
    user: str
    emoji: str
    createdAt: Optional[datetime] = None

# ------------------ Core Collections ------------------

class User(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., description="bcrypt hash, never the plain password")
    avatar: str = DEFAULT_AVATAR
    skills: List[Skill] = []
    role: UserRole = 'user'
    status: Literal['active', 'suspended', 'banned'] = 'active'
    active: bool = True
    interests: List[str] = []
    preferences: Preferences = Field(default_factory=Preferences)
    aiPreferences: AIPreferences = Field(default_factory=AIPreferences)
    aiUsage: AIUsage = Field(default_factory=AIUsage)
    activity: Activity = Field(default_factory=Activity)


class Project(BaseModel):
    name: str
    description: str
    category: str = 'General'
    status: ProjectStatus = 'active'
    type: Literal['project', 'collaboration'] = 'project'
    health: Literal['on-track', 'at-risk', 'delayed'] = 'on-track'
    progress: int = Field(0, ge=0, le=100)
    owner: str  # user id string
    collaborators: List[ProjectCollaborator] = []


class Task(BaseModel):
    title: str
    description: Optional[str] = None
    dueDate: Optional[datetime] = None
    project: Optional[str] = None  # absent for personal tasks
    assignedTo: str
    completed: bool = False


class Event(BaseModel):
    title: str
    description: Optional[str] = None
    start: datetime
    end: datetime
    project: str
    createdBy: str
    assignedTo: List[str] = []
    type: EventType = 'other'


class Message(BaseModel):
    sender: str
    recipient: Optional[str] = None  # direct messages
    conversation: Optional[str] = None  # conversation messages
    subject: Optional[str] = None
    content: Optional[str] = None
    project: Optional[str] = None
    thread: Optional[str] = None
    type: MessageType = 'message'
    status: MessageStatus = 'active'
    attachments: List[Attachment] = []
    reactions: List[Reaction] = []
    mentions: List[str] = []
    read: bool = False
    readAt: Optional[datetime] = None


class Conversation(BaseModel):
    participants: List[str]
    subject: str = 'New Conversation'
    messages: List[str] = []
    aiSummary: Optional[str] = None
    aiSummaryGeneratedAt: Optional[datetime] = None
    aiSummaryNeedsUpdate: bool = False


class Collaboration(BaseModel):
    project: str
    sender: str
    receiver: str
    status: CollaborationStatus = 'pending'
    role: CollaborationRole = 'editor'
    message: str = Field('', max_length=500)


class Suggestion(BaseModel):
    user: str
    content: str = Field(..., min_length=1)
    type: Literal['saved', 'generated'] = 'saved'
    status: Literal['active', 'archived', 'implemented'] = 'active'
