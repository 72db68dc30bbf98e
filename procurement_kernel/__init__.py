"""
Procurement Kernel

The procurement workflow engine:
- MRF approval state machine with value-based escalation
- Role-gated approval with an append-only approval history
- RFQ dispatch with manual, category and preferred vendor selection
- Quotation intake, comparison and award
- Purchase order signature and rejection loop
"""

__version__ = "0.1.0"
