"""
Error taxonomy for the tabulation core.

None of these are transient: every one is a policy violation and is
surfaced to the caller as-is.
"""


class TabulatorError(Exception):
    """Base exception for judging operations."""

    pass


class ValidationError(TabulatorError):
    """Value out of range, missing field, or inconsistent references."""

    pass


class NotLiveError(ValidationError):
    """Score write attempted while the track is not live."""

    def __init__(self, track_id: int, status: str):
        self.track_id = track_id
        self.status = status
        super().__init__(f"Track {track_id} is '{status}'; scoring is closed")


class LockedError(TabulatorError):
    """Write attempted on a locked ballot without organizer override."""

    def __init__(self, judge_id: int, participant_id: int):
        self.judge_id = judge_id
        self.participant_id = participant_id
        super().__init__(
            f"Ballot of judge {judge_id} for participant {participant_id} is locked"
        )


class NotFoundError(TabulatorError):
    """Unknown track, participant, judge or criterion id."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with ID {entity_id} not found")
