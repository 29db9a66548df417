from .service import ReferralService, make_slug

__all__ = ["ReferralService", "make_slug"]
