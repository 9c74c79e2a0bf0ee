"""Session orchestration for the SFU to HLS bridge."""
