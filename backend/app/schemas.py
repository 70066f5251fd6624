from typing import Any

from pydantic import BaseModel, ConfigDict


class FinalizeRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    # Validated by the report service so bad shapes answer 400, not 422.
    transcripts: Any = None
