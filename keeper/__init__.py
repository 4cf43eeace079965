"""Turn orchestration core for LLM-driven interactive narrative sessions"""

__version__ = "0.1.0"
