from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator

from boaz.core.database import ensure_utc


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]
