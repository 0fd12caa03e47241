from fastapi import Depends
from storefront.errors import Forbidden
from storefront.models.user import User
from storefront.utils.token import get_current_user


def require_admin(current_user: User = Depends(get_current_user)):
    if current_user.role != "admin":
        raise Forbidden("Admin access required")
    return current_user
