class AuditError(Exception):
    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class AddOnFailure(AuditError):
    """An optional analyzer failed; its result field is omitted."""


class FatalInputError(AuditError):
    """Invalid start URL or no page could be fetched at all."""
