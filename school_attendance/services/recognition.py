from dataclasses import dataclass
from typing import Optional

from school_attendance.schemas.identity import IdentityRead
from school_attendance.services.descriptor import DescriptorCodec, EmbeddingLike
from school_attendance.services.matcher import DistanceMatcher
from school_attendance.stores.base import IdentityStore, most_recent_per_user
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecognitionResult:
    recognized: bool
    identity: Optional[IdentityRead] = None
    confidence: Optional[float] = None
    distance: Optional[float] = None


class RecognitionService:
    def __init__(
        self,
        identities: IdentityStore,
        matcher: Optional[DistanceMatcher] = None,
    ):
        self.identities = identities
        self.matcher = matcher or DistanceMatcher(codec=DescriptorCodec())

    async def identify(self, embedding: EmbeddingLike) -> RecognitionResult:
        """
        Compares the embedding with the latest enrolled descriptor of every user.

        Args:
            embedding: descriptor produced by the external face model.

        Returns:
            A recognized result with the matched identity if the closest
            descriptor lies within the matcher's threshold, otherwise an
            unrecognized result.

        Raises:
            FormatError: the embedding is malformed or its length differs from
                the deployment descriptor dimension.
        """
        query = self.matcher.prepare_query(embedding)
        registered = most_recent_per_user(await self.identities.list_registered())
        if not registered:
            logger.info("No registered faces found in the database")
            return RecognitionResult(recognized=False)

        logger.info("Found %d registered faces to compare against", len(registered))
        match = self.matcher.best_match(
            query,
            ((user_id, identity.descriptor) for user_id, identity in registered.items()),
        )
        if match is None:
            logger.info("No face match found within the distance threshold")
            return RecognitionResult(recognized=False)

        logger.info(
            "Best match %s with confidence %.2f%%", match.candidate_id, match.confidence * 100
        )
        return RecognitionResult(
            recognized=True,
            identity=registered[match.candidate_id],
            confidence=match.confidence,
            distance=match.distance,
        )
