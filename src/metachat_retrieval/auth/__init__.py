from .models import CallerContext
from .security import verify_jwt, require_scopes

__all__ = ["CallerContext", "verify_jwt", "require_scopes"]
