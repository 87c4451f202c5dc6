"""proofwork/core — shared types, configuration, exceptions and validators."""
