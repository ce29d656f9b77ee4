"""Shared plumbing for endpoint groups."""

from typing import Type, TypeVar, Union

from pydantic import BaseModel

from ..models import OkResponse
from ..pipeline import ApiRequest, RequestPipeline

T = TypeVar("T", bound=BaseModel)


class ApiGroup:
    """Base class for a group of related endpoints.

    Subclasses only describe requests; execution, tokens and recovery are
    left to the pipeline.
    """

    def __init__(self, pipeline: RequestPipeline):
        self._pipeline = pipeline

    async def _get(self, path: str, model: Type[T], requires_auth: bool = True) -> T:
        return await self._pipeline.execute(
            ApiRequest("GET", path, requires_auth=requires_auth, response_model=model)
        )

    async def _post(
        self,
        path: str,
        body: Union[BaseModel, bytes],
        model: Type[T] = OkResponse,
        requires_auth: bool = True,
    ) -> T:
        return await self._pipeline.execute(
            ApiRequest("POST", path, requires_auth=requires_auth, body=body, response_model=model)
        )
