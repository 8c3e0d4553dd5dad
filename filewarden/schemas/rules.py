from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from enum import Enum
import uuid


class TriggerType(str, Enum):
    """Event classes that activate a rule"""
    file_created = "file_created"
    file_modified = "file_modified"
    screenshot = "screenshot"
    manual = "manual"


class ConditionType(str, Enum):
    """File attribute a condition inspects"""
    extension = "extension"
    path = "path"
    size = "size"
    name_pattern = "name_pattern"
    name_contains = "name_contains"
    name_starts_with = "name_starts_with"
    name_ends_with = "name_ends_with"
    size_greater_than_mb = "size_greater_than_mb"


class ConditionOperator(str, Enum):
    """Rule condition operators"""
    equals = "equals"
    contains = "contains"
    matches = "matches"
    greater_than = "greater_than"
    less_than = "less_than"
    in_ = "in"


class ActionType(str, Enum):
    """Filesystem operations a rule can perform"""
    move = "move"
    copy = "copy"
    rename = "rename"
    compress = "compress"


class CompressQuality(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ActionStatus(str, Enum):
    pending = "pending"
    success = "success"
    failed = "failed"


class RunStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class DocumentModel(BaseModel):
    """Base for persisted documents: camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)


class Trigger(DocumentModel):
    """Rule trigger definition"""
    type: TriggerType = Field(TriggerType.file_created, description="Event class")
    config: Dict[str, Any] = Field(default_factory=dict, description="Trigger config, e.g. {'folder': '{downloads}'}")

    @property
    def folder(self) -> Optional[str]:
        folder = self.config.get("folder")
        return folder if isinstance(folder, str) and folder else None


class Condition(DocumentModel):
    """Rule condition definition"""
    type: ConditionType = Field(..., description="File attribute to check")
    operator: ConditionOperator = Field(ConditionOperator.equals, description="Comparison operator")
    value: Union[str, int, float, List[str]] = Field(..., description="Value to compare against")


class CompressSettings(DocumentModel):
    quality: CompressQuality = Field(CompressQuality.medium, description="Compression preset tier")
    archive_original: bool = Field(False, alias="archiveOriginal", description="Keep the uncompressed original")


class ActionConfig(DocumentModel):
    """Action configuration"""
    destination: str = Field(..., description="Destination directory or file template")
    pattern: Optional[str] = Field(None, description="Rename pattern template")
    create_dirs: bool = Field(True, alias="createDirs", description="Create missing destination directories")
    compress: Optional[CompressSettings] = Field(None, description="Compression settings")


class Action(DocumentModel):
    """Rule action definition"""
    type: str = Field(..., description="Type of action to perform")
    config: ActionConfig

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        allowed_actions = [t.value for t in ActionType]
        if v not in allowed_actions:
            raise ValueError(f"Invalid action type. Must be one of: {allowed_actions}")
        return v


class Rule(DocumentModel):
    """A named, prioritized WHEN (trigger + conditions) -> DO (actions) rule"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., description="Rule name")
    enabled: bool = Field(True, description="Whether rule is enabled")
    priority: int = Field(0, description="Rule priority (higher = evaluated first)")
    tags: List[str] = Field(default_factory=list, description="Rule tags")
    trigger: Trigger = Field(default_factory=Trigger)
    conditions: List[Condition] = Field(default_factory=list, description="Rule conditions (AND logic)")
    actions: List[Action] = Field(default_factory=list, description="Actions to perform in order")
    created_at: datetime = Field(default_factory=datetime.now, alias="createdAt")
    updated_at: datetime = Field(default_factory=datetime.now, alias="updatedAt")


class ActionResult(DocumentModel):
    """Outcome of one executed action"""
    action: Action
    status: ActionStatus = ActionStatus.pending
    source_path: Optional[str] = Field(None, alias="sourcePath")
    destination_path: Optional[str] = Field(None, alias="destinationPath")
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == ActionStatus.success.value


class RuleRun(DocumentModel):
    """One execution of a rule against a file"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    rule_id: str = Field(..., alias="ruleId")
    status: RunStatus = RunStatus.pending
    triggered_by: str = Field("file_event", alias="triggeredBy")
    file_path: Optional[str] = Field(None, alias="filePath")
    file_size: Optional[int] = Field(None, alias="fileSize")
    destination_path: Optional[str] = Field(None, alias="destinationPath")
    tags: List[str] = Field(default_factory=list)
    dry_run: bool = Field(False, alias="dryRun")
    actions: List[ActionResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now, alias="startedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    error: Optional[str] = None


class ScreenshotMetadata(DocumentModel):
    """Foreground application context captured when a screenshot lands"""
    app_name: str = Field(..., alias="appName")
    window_title: str = Field("Unknown", alias="windowTitle")
    timestamp: datetime = Field(default_factory=datetime.now)
    domain: Optional[str] = None
    url: Optional[str] = None
