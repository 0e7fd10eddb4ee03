class DomainException(Exception):
    pass


# Validation errors
class ValidationError(DomainException):
    pass


class InvalidStatusError(ValidationError):
    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Invalid order status: {status!r}")


class InvalidContentError(ValidationError):
    pass


class InvalidEmailError(ValidationError):
    pass


class ProductUnavailableError(ValidationError):
    pass


# Not found
class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class ContentNotFoundError(NotFoundError):
    pass


class SubscriberNotFoundError(NotFoundError):
    pass


class PaymentConfigurationNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class RoleNotFoundError(NotFoundError):
    pass


# Business rule rejections
class BusinessRuleError(DomainException):
    pass


class StatusTransitionError(BusinessRuleError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Order cannot move from {current} to {target}")


class StaleOrderError(BusinessRuleError):
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Order status changed meanwhile: expected {expected}, found {actual}")


class DuplicateOrderError(BusinessRuleError):
    pass


class DuplicateSubscriberError(BusinessRuleError):
    pass


class DuplicateRoleError(BusinessRuleError):
    pass


class DuplicateInvitationError(BusinessRuleError):
    pass


class DuplicateSectionError(BusinessRuleError):
    pass


class DuplicateProductError(BusinessRuleError):
    pass


class DefaultConfigurationError(BusinessRuleError):
    pass


class InsufficientStockError(BusinessRuleError):
    def __init__(self, product_id: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Only {available} of product {product_id} left, {requested} requested")


class PermissionDeniedError(DomainException):
    pass


# Remote call failures
class RemoteServiceError(DomainException):
    pass


class PaymentServiceError(RemoteServiceError):
    pass


class EmailServiceError(RemoteServiceError):
    pass


class MailingListServiceError(RemoteServiceError):
    pass


class IntegrationNotConfiguredError(RemoteServiceError):
    pass


class WebhookSignatureError(DomainException):
    pass
