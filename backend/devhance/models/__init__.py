from devhance.db.base import Base
from devhance.models.user import User
from devhance.models.analysis_lock import AnalysisLock
from devhance.models.repo_context import RepoContext
from devhance.models.case_study import CaseStudy
from devhance.models.payment import Payment, PaymentStatus
from devhance.models.vc_report import VCReport

__all__ = [
    "Base",
    "User",
    "AnalysisLock",
    "RepoContext",
    "CaseStudy",
    "Payment",
    "PaymentStatus",
    "VCReport",
]
