# companion/infrastructure/repositories_answer.py
from __future__ import annotations

from collections.abc import Mapping

from .logging import log_database_operation as log_op
from .models import AnswerORM
from .repositories_base import BaseRepository


class AnswerRepo(BaseRepository[AnswerORM]):
    model = AnswerORM

    @log_op("answer.map_for_profile")
    def map_for_profile(self, profile_id: int) -> dict[str, bool]:
        rows = self.list(AnswerORM.profile_id == profile_id, order_by=[AnswerORM.id])
        return {row.question_id: bool(row.value) for row in rows}

    @log_op("answer.replace_all")
    def replace_all(self, profile_id: int, answers: Mapping[str, bool]) -> None:
        """Make the stored answers for a profile exactly `answers`."""
        existing = {row.question_id: row for row in self.list(AnswerORM.profile_id == profile_id)}
        for question_id, row in existing.items():
            if question_id not in answers:
                self.s.delete(row)
        for question_id, value in answers.items():
            row = existing.get(question_id)
            if row is None:
                self.s.add(
                    AnswerORM(profile_id=profile_id, question_id=question_id, value=bool(value))
                )
            else:
                row.value = bool(value)
        self.s.flush()
