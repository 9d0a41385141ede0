"""Job mail ingestion: Gmail conversations -> extracted job records -> Google Sheets."""

__version__ = "1.0.0"
