import click


class Seconds(click.ParamType):
    """A duration in seconds, no shorter than min_seconds."""

    name = "seconds"

    def __init__(self, min_seconds: float):
        self.min_seconds = min_seconds

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            seconds = value
        else:
            try:
                seconds = float(value)
            except ValueError:
                self.fail(f"{value} is not a number of seconds", param, ctx)
        if seconds < self.min_seconds:
            self.fail(f"timeout must be at least {self.min_seconds} seconds, got {value}", param, ctx)
        return seconds
