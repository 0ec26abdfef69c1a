"""Sales ledger -- sellers, sales, receivables, commissions and CRM reconciliation.

Provides SQLAlchemy models, Pydantic schemas, repositories, the commission
and tax engine, the receivable schedule generator, and (in ``crm``) the
Pipedrive deal synchronization subsystem.
"""
