from stockledger.models.inventory_change import InventoryChangeLog
from stockledger.models.purchase import PurchaseEntry, PurchaseEntryItem
from stockledger.models.pending_order_line import PendingOrderLine
