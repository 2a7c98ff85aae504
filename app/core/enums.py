import enum


class Priority(str, enum.Enum):
    URGENT = "urgent"
    IMPORTANT = "important"
    MAINTENANCE = "maintenance"


class Category(str, enum.Enum):
    CANDIDATE = "candidate"
    JOB = "job"
    COMMUNICATION = "communication"


class VerificationMode(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


class SessionStoreBackend(str, enum.Enum):
    MEMORY = "memory"
    FILE = "file"
    REDIS = "redis"
