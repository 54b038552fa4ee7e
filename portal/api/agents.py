"""
基础模型 / 默认模型 / Agent / 用户接口
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .. import agents, auth
from ..errors import AuthorizationError
from ..models import Agent, ModelOption, User
from .deps import current_user, optional_user

router = APIRouter()


class AgentCreate(BaseModel):
    base_model_id: int
    name: str
    system_prompt: str
    avatar: Optional[str] = None


class BaseModelUpsert(BaseModel):
    model_id: str
    name: str
    provider: str
    context_length: int
    description: Optional[str] = None
    prompt_price: float = 0.0
    completion_price: float = 0.0

    class Config:
        protected_namespaces = ()


class DefaultModelRequest(BaseModel):
    base_model_id: int


class UserUpdate(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


async def _require_admin(user_id: str = Depends(current_user)) -> str:
    if not await auth.is_admin(user_id):
        raise AuthorizationError("Admin only")
    return user_id


# ==================== 用户 ====================

@router.get("/me", response_model=Optional[User])
async def viewer(user_id: Optional[str] = Depends(optional_user)):
    return await auth.get_user(user_id) if user_id else None


@router.patch("/me", response_model=User)
async def update_me(body: UserUpdate, user_id: str = Depends(current_user)):
    return await auth.update_profile(user_id, body.name, body.avatar)


@router.get("/me/admin")
async def is_admin(user_id: Optional[str] = Depends(optional_user)):
    return {"is_admin": await auth.is_admin(user_id)}


# ==================== 基础模型 ====================

@router.get("/models", response_model=List[ModelOption])
async def list_base_models(include_inactive: bool = False):
    return await agents.list_base_models(active_only=not include_inactive)


@router.post("/models", dependencies=[Depends(_require_admin)])
async def upsert_base_model(body: BaseModelUpsert):
    base_model_id = await agents.upsert_base_model(**body.model_dump())
    return {"id": base_model_id}


@router.post("/models/{base_model_id}/toggle", dependencies=[Depends(_require_admin)])
async def toggle_base_model(base_model_id: int):
    return {"id": base_model_id, "is_active": await agents.toggle_base_model_active(base_model_id)}


@router.get("/models/default", response_model=Optional[ModelOption])
async def get_default_model():
    return await agents.get_default_model()


@router.post("/models/default", response_model=ModelOption, dependencies=[Depends(_require_admin)])
async def select_default_model(body: DefaultModelRequest):
    return await agents.select_default_model(body.base_model_id)


# ==================== Agent ====================

@router.get("/agents", response_model=List[Agent])
async def list_my_agents(user_id: Optional[str] = Depends(optional_user)):
    return await agents.list_my_agents(user_id)


@router.post("/agents", response_model=Agent)
async def create_agent(body: AgentCreate, user_id: str = Depends(current_user)):
    return await agents.create_agent(
        user_id, body.base_model_id, body.name, body.system_prompt, body.avatar
    )


@router.get("/agents/{agent_id}", response_model=Agent)
async def get_agent(agent_id: int, user_id: str = Depends(current_user)):
    return await agents.get_agent(agent_id, user_id)
