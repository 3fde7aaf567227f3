# storefront/realtime/__init__.py
from storefront.realtime.change_feed import ChangeEvent, ChangeFeed, ChangeOp, ChannelStatus, Subscription
from storefront.models.order_models import Order

# process-wide feed of committed order changes
change_feed = ChangeFeed()
change_feed.watch(Order)
