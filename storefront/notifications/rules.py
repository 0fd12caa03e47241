from storefront.notifications.events import NotificationEvent
from storefront.notifications.channels import Channel


NOTIFICATION_RULES = {

    NotificationEvent.PAYMENT_SUCCESS: {
        Channel.EMAIL_USER: True,
        Channel.EMAIL_ADMIN: True,
    },

    NotificationEvent.OUT_FOR_DELIVERY: {
        Channel.EMAIL_USER: True,
    },

}
