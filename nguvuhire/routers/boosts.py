from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from nguvuhire.core.exceptions import UnauthorizedError
from nguvuhire.deps import AuthContext, get_optional_auth_context
from nguvuhire.services import boosts as boosts_service

router = APIRouter()


class BoostRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    post_id: str = Field(alias="postId")
    post_type: str = Field(default="job", alias="postType")
    boost_type: str = Field(default="standard", alias="boostType")


@router.post("/boost-post")
async def boost_post(body: BoostRequest, auth: AuthContext | None = Depends(get_optional_auth_context)):
    """Spend one boost credit on an owned post."""
    if auth is None:
        raise UnauthorizedError("You must be logged in to boost posts")
    record, balance = await boosts_service.apply_boost(
        body.post_id,
        body.post_type,
        auth.user_id,
        body.boost_type,
    )
    return {
        "success": True,
        "message": "Post boosted successfully",
        "boostEnd": record.boost_end.isoformat(),
        "creditsRemaining": balance.credits_available,
    }
