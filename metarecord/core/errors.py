"""Exceptions raised while parsing a record export."""


class RecordParseError(Exception):
    """base class for fatal parse errors."""


class NoRecordDocumentFound(RecordParseError):
    """archive holds no recognizable record document (or is not a ZIP)."""


class MalformedDocument(RecordParseError):
    """record document could not be turned into any tree at all."""


class ParseCancelled(RecordParseError):
    """caller cancelled the parse between section extractions."""
