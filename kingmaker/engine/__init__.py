"""
Kingdom Turn & Economy Engine
Core engine without web framework, database, or UI
"""

# Leadership activities per turn; a structure bonus raises it by one
BASE_LEADERSHIP_ACTIVITIES = 2
BONUS_LEADERSHIP_ACTIVITIES = 3

# Random kingdom event check: DC drops by EVENT_DC_STEP for every turn without an event
EVENT_BASE_DC = 16
EVENT_DC_STEP = 5
EVENT_MIN_DC = 1

# Unrest
UNREST_RUIN_THRESHOLD = 10  # at or above: roll ruin and check for hex loss
HEX_LOSS_DC = 11
REDUCE_UNREST_DC = 11
ANARCHY_THRESHOLD = 20
ENDURE_ANARCHY_THRESHOLD = 24

# Food shortage remedies
CONSUMPTION_RP_PRICE = 5  # resource points per missing food commodity
SHORTAGE_UNREST_FORMULA = "1d4"

MAX_KINGDOM_LEVEL = 20
MAX_FAME = 3

# Feats with hardcoded economic effects
INSIDER_TRADING = "Insider Trading"
ENDURE_ANARCHY = "Endure Anarchy"
