from fastapi import APIRouter, Depends

from sanatan_store.interfaces.dependencies import current_user_id, get_container
from sanatan_store.interfaces.schemas import ManageRoleRequest, OrderStatusRequest

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users")
def list_users(container=Depends(get_container), user_id: str = Depends(current_user_id)):
    return {"users": container.admin.list_users(user_id)}


@router.post("/users/roles")
def manage_role(payload: ManageRoleRequest, container=Depends(get_container),
                user_id: str = Depends(current_user_id)):
    message = container.admin.manage_role(user_id, payload.target_user_id, payload.role, payload.action)
    return {"message": message}


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusRequest, container=Depends(get_container),
                        user_id: str = Depends(current_user_id)):
    return container.admin.update_order_status(user_id, order_id, payload.status).to_dict()
