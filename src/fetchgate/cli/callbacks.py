import typer


def parse_header(value: str) -> tuple[str, str]:
    name, separator, header_value = value.partition(":")
    name = name.strip()
    if not separator or not name:
        raise typer.BadParameter(
            message=f"'{value}' is not a valid header, expected 'Name: value'",
            param_hint="--header, -H",
        )
    return name, header_value.strip()


def headers_callback(ctx: typer.Context, value: list[str] | None):
    if ctx.resilient_parsing:
        return
    for item in value or []:
        parse_header(item)
    return value


def timeout_callback(ctx: typer.Context, value: float | None):
    if ctx.resilient_parsing:
        return
    if value is not None and value <= 0:
        raise typer.BadParameter(
            message=f"timeout must be greater than 0, got {value}",
            param_hint="--timeout, -t",
        )
    return value


def urls_callback(ctx: typer.Context, value: list[str]):
    if ctx.resilient_parsing:
        return
    invalid = [url for url in value if not url.startswith(("http://", "https://"))]
    if invalid:
        raise typer.BadParameter(
            message=f"only http and https URLs are supported, got: {', '.join(invalid)}",
        )
    return value
