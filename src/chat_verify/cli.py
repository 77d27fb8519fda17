import json
from pathlib import Path
import click
from .logic import verify_store

@click.group()
def main():
    pass

@main.command("store")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--strict", is_flag=True, help="Also fail on empty allocated slots and untracked data")
def store_cmd(path: Path, strict: bool):
    result = verify_store(path, strict=strict)
    click.echo(json.dumps(result, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    if result["status"] != "PASS":
        raise SystemExit(1)

if __name__ == "__main__":
    main()
