from invoice_pipeline.prompts.classification import build_classification_messages
from invoice_pipeline.prompts.extraction import build_extraction_messages

__all__ = ["build_classification_messages", "build_extraction_messages"]
