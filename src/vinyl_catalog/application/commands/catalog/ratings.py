"""Set or clear a user's rating of a record."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ...commands.base import Command, CommandHandler, CommandResult, require_identity
from ....domain.catalog.entities import Record
from ....domain.catalog.repositories import RecordChange, RecordRepository
from ....domain.catalog.services import RatingAggregator
from ....domain.catalog.value_objects import validate_rating
from ....events import EventBus, RatingChanged

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class SetRatingCommand(Command):
    """Rate a record 1-5; None or 0 clears the caller's rating."""

    record_id: str
    user_id: str
    username: Optional[str] = None
    rating: Any = None


class SetRatingHandler(CommandHandler[SetRatingCommand, CommandResult]):
    """Handler for rating records."""

    command_type = SetRatingCommand

    def __init__(self, record_repo: RecordRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.record_repo = record_repo

    async def handle(self, command: SetRatingCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        rating = validate_rating(command.rating)

        def mutate(record: Record) -> RecordChange:
            RatingAggregator.set_rating(record, user_id, command.username, rating)
            return RecordChange(rater_ids=(user_id,))

        record = await self.record_repo.modify(command.record_id, mutate)
        summary = RatingAggregator.summarize(record)
        logger.info(
            f"User {user_id} {'rated' if rating else 'cleared rating of'} {record.id}; "
            f"average {summary.average} from {summary.count}"
        )

        events = [RatingChanged(
            record_id=record.id,
            user_id=user_id,
            rating=rating,
            average_rating=summary.average,
            rating_count=summary.count,
        )]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message="Rating saved" if rating else "Rating removed",
            result_data={
                "record": record.to_dict(),
                "averageRating": summary.average,
                "ratingCount": summary.count,
                "userRating": rating,
            },
            events=await self._publish(events),
        )
