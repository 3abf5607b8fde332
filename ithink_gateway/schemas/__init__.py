from ithink_gateway.schemas.shipping import FieldFallback, NormalizedOrder, OrderItem
