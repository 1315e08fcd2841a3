from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Course:
    id: int
    title: str
    instructor_id: int | None = None


@dataclass(frozen=True, slots=True)
class Module:
    id: int
    course_id: int
    title: str
    order_num: int = 0


@dataclass(frozen=True, slots=True)
class Lesson:
    id: int
    module_id: int
    title: str
    content_type: str = "text"  # video|text|quiz|assignment
    order_num: int = 0
