import logging

from fastapi import APIRouter, Depends

from sanatan_store.interfaces.dependencies import get_container
from sanatan_store.interfaces.schemas import RequestOTPRequest, VerifyOTPRequest

router = APIRouter(prefix="/auth/otp", tags=["Authentication"])
logger = logging.getLogger(__name__)


@router.post("/request")
def request_otp(payload: RequestOTPRequest, container=Depends(get_container)):
    """Send a login code by SMS. Never returns the code."""
    container.otp_service.request_otp(payload.phone)
    return {"success": True, "message": "OTP sent successfully"}


@router.post("/verify")
def verify_otp(payload: VerifyOTPRequest, container=Depends(get_container)):
    result = container.otp_service.verify_otp(payload.phone, payload.otp, payload.full_name)
    return result.to_dict()
