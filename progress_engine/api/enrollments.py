"""Enrollment endpoints: self-enrollment and the staff listing."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from progress_engine.api.dependencies import (
    actor_id,
    require_staff,
    require_user,
    resolve_learner,
)
from progress_engine.api.schemas import CountsOut, EnrollmentOut
from progress_engine.models.principal import Principal
from progress_engine.services import aggregator, enrollment_ledger
from progress_engine.services.unit_of_work import unit_of_work

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


class EnrollIn(BaseModel):
    cohort_id: UUID
    league_id: UUID


class EnrollmentProgressOut(BaseModel):
    enrollment: EnrollmentOut
    sections: CountsOut


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class EnrollmentPageOut(BaseModel):
    enrollments: list[EnrollmentProgressOut]
    pagination: PaginationOut


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def enroll(
    body: EnrollIn,
    learner_id: Annotated[UUID, Depends(resolve_learner)],
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    async with unit_of_work() as uow:
        enrollment = await enrollment_ledger.enroll(
            uow,
            learner_id=learner_id,
            cohort_id=body.cohort_id,
            league_id=body.league_id,
            actor_id=actor_id(principal),
        )
    return EnrollmentOut.of(enrollment)


@router.get("", response_model=EnrollmentPageOut)
async def list_enrollments(
    _principal: Annotated[Principal, Depends(require_staff)],
    page: Annotated[int, Query()] = 1,
    limit: Annotated[int, Query()] = 10,
    cohort_id: Annotated[UUID | None, Query()] = None,
    league_id: Annotated[UUID | None, Query()] = None,
    learner_id: Annotated[UUID | None, Query()] = None,
) -> EnrollmentPageOut:
    async with unit_of_work() as uow:
        result = await aggregator.list_enrollments(
            uow,
            page=page,
            limit=limit,
            cohort_id=cohort_id,
            league_id=league_id,
            learner_id=learner_id,
        )
    return EnrollmentPageOut(
        enrollments=[
            EnrollmentProgressOut(
                enrollment=EnrollmentOut.of(item.enrollment),
                sections=CountsOut.of(item.sections),
            )
            for item in result.items
        ],
        pagination=PaginationOut(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )
