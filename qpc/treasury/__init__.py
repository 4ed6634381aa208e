from .refunds import LedgerPayoutSink, PayoutSink, RefundLedger

__all__ = ["LedgerPayoutSink", "PayoutSink", "RefundLedger"]
