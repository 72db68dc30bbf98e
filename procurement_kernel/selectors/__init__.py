"""Read-only selectors."""

from procurement_kernel.selectors.base import BaseSelector
from procurement_kernel.selectors.mrf_selector import MRFSelector
from procurement_kernel.selectors.rfq_selector import RFQSelector

__all__ = ["BaseSelector", "MRFSelector", "RFQSelector"]
