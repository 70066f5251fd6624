from typing import Dict, List

from .models import TranscriptTurn


class TranscriptState:
    """
    Holds all transcript-related state for ONE interview session.
    """

    def __init__(self):
        # Ordered truth; turns are appended, never removed
        self.turns: List[TranscriptTurn] = []

        # Open assistant drafts keyed by derived draft key
        self.drafts: Dict[str, TranscriptTurn] = {}

        # Assistant keys already finalized (duplicate terminal guard)
        self.finalized: Dict[str, TranscriptTurn] = {}

        # Participant turns keyed by transcription item id
        self.participant_turns: Dict[str, TranscriptTurn] = {}

    def append(self, turn: TranscriptTurn) -> TranscriptTurn:
        self.turns.append(turn)
        return turn

    def clear(self) -> None:
        self.turns.clear()
        self.drafts.clear()
        self.finalized.clear()
        self.participant_turns.clear()
