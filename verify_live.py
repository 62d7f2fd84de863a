import argparse
import asyncio
import logging

from schoolmap.data.amap import AMapPlaceSearch
from schoolmap.geo.location import resolve_by_name


def main():
    parser = argparse.ArgumentParser(description="Verify live AMap place search for a school.")
    parser.add_argument("--name", type=str, default="北京市十一学校")
    parser.add_argument("--address", type=str, default="玉泉路66号")
    parser.add_argument("--city", type=str, default="北京")
    parser.add_argument("--timeout", type=float, default=10.0)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    )
    logging.info("Searching %r (address %r) in %s", args.name, args.address, args.city)
    lookup = asyncio.run(
        resolve_by_name(
            args.name, args.address, AMapPlaceSearch(), city=args.city, timeout=args.timeout
        )
    )
    print("found", lookup.found)
    print("source", lookup.source)
    if lookup.found:
        print("coordinate", "%.6f,%.6f" % lookup.coordinate)


if __name__ == "__main__":
    main()
