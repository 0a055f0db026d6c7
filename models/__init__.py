from .db import db
from .user import User
from .swap_request import SwapRequest
from .rate_counter import RateCounter
from .audit_log import AuditLog
