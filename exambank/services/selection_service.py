"""Stratified random selection of questions for generated test papers.

A request is partitioned into independent (subject, question type, difficulty)
cells; each cell is sampled without replacement at the storage layer. Cells that
ask for more questions than exist come back short: the shortfall is reported,
never padded or substituted from another cell.

Selecting and locking are separate calls, so two concurrent paper assemblies
can draw overlapping questions before either locks them. ``assemble_paper``
narrows that window by claiming the drawn ids with a conditional update and
reporting the ids that another request claimed first.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from exambank.core.config import get_settings
from exambank.core.errors import ValidationError
from exambank.core.exam_types import resolve_exam_key
from exambank.db.questions_repo import QuestionBankRepo
from exambank.db.router import DatabaseRouter
from exambank.schemas.question import Difficulty, QuestionType, QuestionView
from exambank.schemas.selection import (
    AssembleRequest,
    AssembleResult,
    CellBreakdown,
    DifficultyPercentages,
    DifficultySelectionRequest,
    LockFilter,
    RandomSelectionRequest,
    SelectionMode,
    SelectionResult,
    TypeCounts,
)
from exambank.services.lock_service import claim_questions

logger = logging.getLogger(__name__)

QUESTION_TYPES = (QuestionType.mcq, QuestionType.integer)


@dataclass(frozen=True)
class Cell:
    subject_id: str
    question_type: QuestionType
    difficulty: Optional[Difficulty]
    requested: int


def split_by_difficulty(total: int, percentages: DifficultyPercentages) -> Dict[Difficulty, int]:
    """Floor the easy and medium shares; hard takes the remainder so the parts sum to ``total``."""

    easy = math.floor(percentages.easy * total / 100)
    medium = math.floor(percentages.medium * total / 100)
    return {Difficulty.easy: easy, Difficulty.medium: medium, Difficulty.hard: total - easy - medium}


def _validate_selections(selections: Optional[Dict[str, TypeCounts]]) -> Dict[str, TypeCounts]:
    if not selections:
        raise ValidationError("subjectSelections is required")
    for subject_id in selections:
        if not subject_id or not subject_id.strip():
            raise ValidationError("subjectSelections keys must be non-empty subject ids")
    return selections


def _validate_percentages(percentages: Optional[DifficultyPercentages]) -> DifficultyPercentages:
    if percentages is None:
        raise ValidationError("difficultyPercentages is required")
    total = percentages.easy + percentages.medium + percentages.hard
    if not math.isclose(total, 100):
        raise ValidationError(
            "Difficulty percentages must sum to 100",
            difficultyPercentages=percentages.model_dump(),
        )
    return percentages


def _lock_filter(requested: Optional[LockFilter], configured_default: str) -> LockFilter:
    return requested or LockFilter(configured_default)


def random_cells(selections: Dict[str, TypeCounts]) -> List[Cell]:
    cells: List[Cell] = []
    for subject_id, counts in selections.items():
        for question_type in QUESTION_TYPES:
            requested = getattr(counts, question_type.value)
            if requested > 0:
                cells.append(Cell(subject_id, question_type, None, requested))
    return cells


def difficulty_cells(selections: Dict[str, TypeCounts], percentages: DifficultyPercentages) -> List[Cell]:
    cells: List[Cell] = []
    for subject_id, counts in selections.items():
        for question_type in QUESTION_TYPES:
            total = getattr(counts, question_type.value)
            if total <= 0:
                continue
            for difficulty, requested in split_by_difficulty(total, percentages).items():
                if requested > 0:
                    cells.append(Cell(subject_id, question_type, difficulty, requested))
    return cells


async def _sample_cell(repo: QuestionBankRepo, exam_key: str, cell: Cell, lock_filter: LockFilter) -> List[Dict]:
    filters: Dict = {"examType": exam_key, "subjectId": cell.subject_id, "questionType": cell.question_type.value}
    if cell.difficulty is not None:
        filters["difficulty"] = cell.difficulty.value
    filters.update(lock_filter.as_filter())
    docs = await repo.sample(filters, cell.requested)
    if len(docs) < cell.requested:
        logger.info(
            "Under-filled cell subject=%s type=%s difficulty=%s: %s of %s",
            cell.subject_id,
            cell.question_type.value,
            cell.difficulty.value if cell.difficulty else "-",
            len(docs),
            cell.requested,
        )
    return docs


async def _run_cells(
    repo: QuestionBankRepo, exam_key: str, cells: List[Cell], lock_filter: LockFilter
) -> SelectionResult:
    results = await asyncio.gather(*(_sample_cell(repo, exam_key, cell, lock_filter) for cell in cells))
    questions: List[QuestionView] = []
    breakdown: List[CellBreakdown] = []
    for cell, docs in zip(cells, results):
        questions.extend(QuestionView.from_doc(doc) for doc in docs)
        breakdown.append(
            CellBreakdown(
                subject_id=cell.subject_id,
                question_type=cell.question_type.value,
                difficulty=cell.difficulty.value if cell.difficulty else None,
                requested=cell.requested,
                selected=len(docs),
            )
        )
    return SelectionResult(
        questions=questions,
        total=len(questions),
        requested=sum(cell.requested for cell in cells),
        lock_filter=lock_filter,
        breakdown=breakdown,
    )


def _prepare_random(payload: RandomSelectionRequest) -> Tuple[str, List[Cell], LockFilter]:
    selections = _validate_selections(payload.subject_selections)
    exam_key = resolve_exam_key(payload.exam_type)
    lock_filter = _lock_filter(payload.lock_filter, get_settings().random_selection_lock_filter)
    return exam_key, random_cells(selections), lock_filter


def _prepare_difficulty(payload: DifficultySelectionRequest) -> Tuple[str, List[Cell], LockFilter]:
    selections = _validate_selections(payload.subject_selections)
    percentages = _validate_percentages(payload.difficulty_percentages)
    exam_key = resolve_exam_key(payload.exam_type)
    lock_filter = _lock_filter(payload.lock_filter, get_settings().difficulty_selection_lock_filter)
    return exam_key, difficulty_cells(selections, percentages), lock_filter


async def select_random(payload: RandomSelectionRequest, router: DatabaseRouter) -> SelectionResult:
    """Draw ``{mcq, integer}`` counts per subject; by default only unlocked questions."""

    exam_key, cells, lock_filter = _prepare_random(payload)
    repo = await router.get_repo(exam_key)
    result = await _run_cells(repo, exam_key, cells, lock_filter)
    logger.info("Random selection on %s: %s of %s questions", exam_key, result.total, result.requested)
    return result


async def select_by_difficulty(payload: DifficultySelectionRequest, router: DatabaseRouter) -> SelectionResult:
    """Draw per subject and type, split across Easy/Medium/Hard by global percentages."""

    exam_key, cells, lock_filter = _prepare_difficulty(payload)
    repo = await router.get_repo(exam_key)
    result = await _run_cells(repo, exam_key, cells, lock_filter)
    logger.info("Difficulty selection on %s: %s of %s questions", exam_key, result.total, result.requested)
    return result


async def assemble_paper(payload: AssembleRequest, router: DatabaseRouter) -> AssembleResult:
    """
    Select, then claim exactly the drawn questions.

    The claim only flips questions that are still unlocked; questions another
    request locked in between are dropped from the result and listed in
    ``conflicts``. Questions drawn with ``lockFilter=any`` that were already
    locked before the draw also end up in ``conflicts``.
    """

    if payload.mode is SelectionMode.difficulty:
        exam_key, cells, lock_filter = _prepare_difficulty(payload)
    else:
        exam_key, cells, lock_filter = _prepare_random(payload)
    repo = await router.get_repo(exam_key)
    selection = await _run_cells(repo, exam_key, cells, lock_filter)

    ids = [question.id for question in selection.questions]
    claimed_ids = await claim_questions(repo, exam_key, ids)
    conflicts = [question_id for question_id in ids if question_id not in claimed_ids]
    if conflicts:
        logger.warning("Paper assembly on %s lost %s questions to concurrent claims", exam_key, len(conflicts))
    claimed = [question.model_copy(update={"locked": True}) for question in selection.questions if question.id in claimed_ids]
    return AssembleResult(
        questions=claimed,
        total=len(claimed),
        requested=selection.requested,
        lock_filter=lock_filter,
        breakdown=selection.breakdown,
        claimed=len(claimed),
        conflicts=conflicts,
    )
