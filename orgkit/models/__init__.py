# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import TimestampMixin, UUIDMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .membership import Membership  # noqa: F401
from .invitation import Invitation  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
from .verification_code import VerificationCode  # noqa: F401
