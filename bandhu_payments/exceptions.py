class PaymentServiceError(Exception):
    """Base class for errors raised inside the payments service."""


class ConfigurationError(PaymentServiceError):
    """A gateway key or secret needed to hash or verify is missing."""


class MalformedRequestError(PaymentServiceError):
    """A callback arrived without the fields needed to process it."""


class PersistenceError(PaymentServiceError):
    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class OrderNotFoundError(PersistenceError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id!r} not found", retryable=False)
        self.order_id = order_id


class PaymentNotFoundError(PersistenceError):
    def __init__(self, transaction_id: str, gateway: str):
        super().__init__(
            f"No {gateway} payment with transaction id {transaction_id!r}",
            retryable=False,
        )
        self.transaction_id = transaction_id
        self.gateway = gateway


class OrderMismatchError(PersistenceError):
    def __init__(self, transaction_id: str, order_id: str):
        super().__init__(
            f"Transaction {transaction_id!r} does not belong to order {order_id!r}",
            retryable=False,
        )
        self.transaction_id = transaction_id
        self.order_id = order_id


class OrderAlreadyPaidError(PaymentServiceError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id!r} is already paid")
        self.order_id = order_id
