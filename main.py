import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List

from dotenv import load_dotenv

from blog_api import ApiClient, ClassifiedError
from blog_api.config import endpoints
from blog_api.models import CachePolicy, DispatchOptions, QueuedResult
from config.load_config import build_settings

# 1. Загружаем переменные из .env
load_dotenv()


def parse_params(pairs: List[str]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"Bad --param '{pair}', expected key=value")
        key, value = pair.split("=", 1)
        params[key] = value
    return params


def dump(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def run(args: argparse.Namespace) -> int:
    settings = build_settings(args.config)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    async with ApiClient(settings) as client:
        if args.command == "health":
            reachable = await client.monitor.probe()
            print(f"{'✅' if reachable else '❌'} {settings.health_url}")
            return 0 if reachable else 1

        if args.command == "get":
            options = DispatchOptions(cache=CachePolicy(enabled=args.cache_ttl > 0, ttl_ms=max(args.cache_ttl, 1)))
            dump(await client.get(args.path, params=parse_params(args.param), options=options))
            return 0

        if args.command == "post":
            payload = json.loads(args.data) if args.data else None
            result = await client.submit("POST", args.path, payload, action_type=args.type, offline_safe=args.offline_safe)
            if isinstance(result, QueuedResult):
                print(f"📥 Queued offline: {result.action_id}")
            else:
                dump(result)
            return 0

        if args.command == "queue":
            dump([action.model_dump(mode="json") for action in client.queue.pending])
            return 0

        if args.command == "sync":
            ok = await client.sync()
            print(f"Sync {'completed' if ok else 'incomplete'}; pending: {len(client.queue)}")
            return 0 if ok else 1

        if args.command == "clear-queue":
            client.queue.clear()
            print("Offline queue cleared")
            return 0

    return 2


def main() -> None:
    parser = argparse.ArgumentParser(description="Blog API request layer smoke CLI")
    parser.add_argument("--config", default=None, help="YAML с переопределениями Settings")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Health-проба API")

    p_get = sub.add_parser("get", help="GET запрос")
    p_get.add_argument("path", nargs="?", default=endpoints.Blog.LIST)
    p_get.add_argument("--param", action="append", default=[], help="key=value")
    p_get.add_argument("--cache-ttl", type=int, default=0, help="TTL кэша, мс (0 = без кэша)")

    p_post = sub.add_parser("post", help="POST с офлайн-фолбэком")
    p_post.add_argument("path")
    p_post.add_argument("--data", default=None, help="JSON тело")
    p_post.add_argument("--type", default=None, help="Тип действия для очереди")
    p_post.add_argument("--offline-safe", action="store_true")

    sub.add_parser("queue", help="Показать офлайн-очередь")
    sub.add_parser("sync", help="Отправить офлайн-очередь")
    sub.add_parser("clear-queue", help="Очистить офлайн-очередь")

    args = parser.parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except ClassifiedError as e:
        print(f"❌ {e.kind.value}: {e.message}")
        for item in e.validation_errors:
            print(f"   {item.field}: {item.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
