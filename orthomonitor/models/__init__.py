from .practice_model import Practice
from .user_model import User
from .patient_model import (
    Patient,
    PatientInvite,
)
from .scan_model import (
    ScanSession,
    ScanImage,
)
from .tagging_model import TagSet
from .message_model import (
    MessageThread,
    Message,
)
from .push_model import PushSubscription
from .audit_model import AuditLog
