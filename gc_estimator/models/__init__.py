from .project import Project
from .estimate import Estimate
from .trade import Trade, SubItem
from .estimate_template import EstimateTemplate
from .trade_category import TradeCategory

__all__ = ["Project", "Estimate", "Trade", "SubItem", "EstimateTemplate", "TradeCategory"]
