"""
Account routes for the privacy settings page (erasure and data portability).
"""

from fastapi import APIRouter, Depends

from cloud_functions.dependencies import BillingServices, call_service, get_services
from cloud_functions.middleware.auth import AuthenticatedUser, get_current_user

router = APIRouter()


@router.post("/deleteAccount")
async def delete_account(
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    message = await call_service("delete account", services.accounts.delete_account, user.uid)
    return {"success": True, "message": message}


@router.get("/exportUserData")
async def export_user_data(
    user: AuthenticatedUser = Depends(get_current_user),
    services: BillingServices = Depends(get_services),
):
    data = await call_service("export data", services.accounts.export_user_data, user.uid)
    return {"success": True, "data": data}
