from .auth import Identity, SessionToken
from .profiles import Profile, Store, UserStore
from .catalog import Product
from .interactions import Interaction, InteractionProduct, InteractionStatus, LossReason
from .security import SecurityEvent

__all__ = [
    'Identity', 'SessionToken',
    'Profile', 'Store', 'UserStore',
    'Product',
    'Interaction', 'InteractionProduct', 'InteractionStatus', 'LossReason',
    'SecurityEvent',
]
