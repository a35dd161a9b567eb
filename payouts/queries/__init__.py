from payouts.queries.common import *
from payouts.queries.context_logs import *
from payouts.queries.trades import *
