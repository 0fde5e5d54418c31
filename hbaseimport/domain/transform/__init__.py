from .row_transformer import RowTransformer, transform
from .serializer import serialize_value

__all__ = [
    "RowTransformer",
    "serialize_value",
    "transform",
]
