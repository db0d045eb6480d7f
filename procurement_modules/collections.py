"""
Entity store collection names shared across modules.

Collections are owned by one module (the only writer) but may be read by
others: preparation reads QC history for supplier grading, billing reads
purchase orders and GRNs for the three-way match.
"""

MATERIAL_REQUESTS = "materialRequests"
PRODUCT_REQUESTS = "productRequests"

PURCHASE_PREPARATIONS = "purchasePreparations"
SUPPLIER_ALLOCATIONS = "supplierAllocations"
PURCHASE_ORDERS = "purchaseOrders"

GOODS_RECEIPTS = "goodsReceipts"
QC_RECORDS = "qcRecords"

RAW_MATERIALS = "rawMaterials"
PACKING_MATERIALS = "packingMaterials"
RAW_MATERIAL_STOCK = "rawMaterialStock"
PACKING_MATERIAL_STOCK = "packingMaterialStock"
RAW_MATERIAL_MOVEMENTS = "rawMaterialMovements"
PACKING_MATERIAL_MOVEMENTS = "packingMaterialMovements"
DISPATCHES = "dispatches"

INVOICES = "invoices"
INVOICES_BY_GRN = "invoicesByGrn"
PAYMENTS = "payments"
