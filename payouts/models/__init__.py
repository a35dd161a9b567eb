"""
Types here are instantiated as subclasses of pydantic's `BaseModel`.
This means we get runtime deserialization and validation for free just by using type declarations
and a couple of pydantic helpers.

Use these in your code as python objects, then serialize to json with `.model_dump()`
"""

from payouts.models.Amount import *
from payouts.models.Config import *
from payouts.models.Holding import *
from payouts.models.Ledger import *
from payouts.models.Order import *
from payouts.models.Trade import *
from payouts.models.types import *
from payouts.models.Writer import *
