"""Daily weight metrics: how much open, estimated work a user is carrying."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from taskcurator.models.curation import DailyWeightMetric
from taskcurator.models.task import SIZES

logger = logging.getLogger("taskcurator.curation")

VELOCITY_WINDOW_DAYS = 7


def _average(points: int, signed: int) -> float:
    return round(points / signed, 2) if signed else 0


def compute_weight_metrics(projects: Iterable[tuple]) -> dict:
    """Aggregate open leaf tasks across ``(project, tasks)`` pairs.

    A task is signed when it carries positive story points. Completed tasks and
    tasks with children are ignored, so a parent's points never add to those
    of its subtasks. ``size_breakdown`` sums points by the leaf's size label.
    """
    total_points = total_tasks = signed = unsigned = 0
    size_breakdown = {size: 0 for size in SIZES}
    project_breakdown = []

    for project, tasks in projects:
        p_points = p_tasks = p_signed = p_unsigned = 0

        for task in tasks:
            if task.status == "completed" or not task.is_leaf:
                continue
            p_tasks += 1
            points = task.current_story_points or 0
            if points > 0:
                p_points += points
                p_signed += 1
                if task.size in size_breakdown:
                    size_breakdown[task.size] += points
            else:
                p_unsigned += 1

        if p_tasks:
            project_breakdown.append(
                {
                    "project_id": project.id,
                    "project_title": project.title,
                    "total_points": p_points,
                    "total_tasks": p_tasks,
                    "signed_tasks": p_signed,
                    "unsigned_tasks": p_unsigned,
                    "average_points": _average(p_points, p_signed),
                }
            )

        total_points += p_points
        total_tasks += p_tasks
        signed += p_signed
        unsigned += p_unsigned

    return {
        "total_story_points": total_points,
        "total_tasks_count": total_tasks,
        "signed_tasks_count": signed,
        "unsigned_tasks_count": unsigned,
        "average_points_per_task": _average(total_points, signed),
        "project_breakdown": project_breakdown,
        "size_breakdown": size_breakdown,
    }


def average_velocity(db: Session, user_id: int, today: date, days: int = VELOCITY_WINDOW_DAYS) -> float:
    start = today - timedelta(days=days - 1)
    value = (
        db.query(func.avg(DailyWeightMetric.daily_velocity))
        .filter(
            DailyWeightMetric.user_id == user_id,
            DailyWeightMetric.metric_date >= start,
            DailyWeightMetric.metric_date <= today,
        )
        .scalar()
    )
    return round(float(value), 2) if value is not None else 0.0


def upsert_weight_metric(db: Session, user_id: int, metric_date: date, values: dict) -> DailyWeightMetric:
    """Replace the row for ``(user_id, metric_date)``; flushes but never commits."""
    metric = (
        db.query(DailyWeightMetric)
        .filter(DailyWeightMetric.user_id == user_id, DailyWeightMetric.metric_date == metric_date)
        .one_or_none()
    )
    if metric is None:
        metric = DailyWeightMetric(user_id=user_id, metric_date=metric_date)
        db.add(metric)

    for field, value in values.items():
        setattr(metric, field, value)
    db.flush()
    return metric


def record_weight_metrics(db: Session, user_id: int, projects: Iterable[tuple], today: date) -> DailyWeightMetric:
    values = compute_weight_metrics(projects)
    values["daily_velocity"] = average_velocity(db, user_id, today)
    metric = upsert_weight_metric(db, user_id, today, values)

    logger.info(
        "weight_metrics_recorded",
        extra={
            "user_id": user_id,
            "total_story_points": values["total_story_points"],
            "total_tasks": values["total_tasks_count"],
            "signed_tasks": values["signed_tasks_count"],
            "unsigned_tasks": values["unsigned_tasks_count"],
        },
    )
    return metric
