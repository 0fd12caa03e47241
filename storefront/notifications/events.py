from enum import Enum


class NotificationEvent(str, Enum):
    PAYMENT_SUCCESS = "payment_success"
    OUT_FOR_DELIVERY = "out_for_delivery"
