import argparse
import asyncio

from dotenv import load_dotenv

load_dotenv(override=True)

from mitmca.ca import get_default_ca
from mitmca.config import Config, load_config
from mitmca.errors import StoragePersistError
from mitmca.logger import CALogger
from mitmca.storage import ca_paths, leaf_paths


async def run(config: Config, hosts: list[str]) -> None:
    logger = CALogger(config.log_path or None, config.log_level, console=True)
    folders = config.folders
    try:
        ca = await get_default_ca(folders, logger)
    except StoragePersistError as e:
        print(f"▸ CA not saved: {e}")
        ca = e.ca
    print(f"▸ CA {ca.serial}  {ca_paths(folders)[0]}")

    if hosts:
        await ca.issue(hosts)
        await ca.flush()
        for path in leaf_paths(folders, hosts[0]):
            print(f"▸ {path}")


def main():
    parser = argparse.ArgumentParser(description="Bootstrap the MITM CA and issue leaf certificates")
    parser.add_argument("hosts", nargs="*", help="Host names or IPs; the first one is the commonName")
    args = parser.parse_args()

    config = load_config()
    asyncio.run(run(config, args.hosts))

if __name__ == "__main__":
    main()
