"""
Task-to-container execution driver.

Takes a task description through a container runtime's lifecycle
(pull, create, start, logs, stop, remove) and reports every outcome
as a value rather than an exception.
"""

__version__ = "0.1.0"
