from fastapi import APIRouter, Depends
from sqlmodel import Session
from storefront.config import Settings, get_settings
from storefront.database import get_session
from storefront.models.user import User
from storefront.schemas.checkout_schemas import QuoteResponse
from storefront.services.cart_service import read_cart_snapshot
from storefront.services.pricing_service import calculate_totals
from storefront.utils.token import get_current_user

router = APIRouter()


# View Cart

@router.get("/", response_model=QuoteResponse)
def get_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    lines = read_cart_snapshot(session, current_user.id)
    return {
        "items": lines,
        "summary": calculate_totals(lines, settings=settings),
    }
