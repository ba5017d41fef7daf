from .cloud_validator import cloud_validator, check_url
from .strategies import strategy_for, STRATEGIES
