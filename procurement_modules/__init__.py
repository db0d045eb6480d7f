"""
Procurement Modules.

Workflow services over the procurement kernel and engines.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas (policy and settings)
- A service (the only writer of the module's documents)

Modules:
- requests: Material/product requests and the two-tier approval chain
- preparation: Supplier assignment, allocation, purchase orders, delivery
- receiving: Goods receipt notes, variance, QC, PO receipt status
- stock: Movement ledger, projection, dispatch, alerts
- billing: Invoices, three-way match, payments
"""
