from controllers.security_admin_controller import _bad_request, _envelope, _parse
from schemas.schemas import CrawlerCheckRequest, MonitorCycleRequest
from security.crawler_monitor import DEFAULT_CRAWLER, DEFAULT_HEALTH_CHECK_URL, CrawlerMonitor


class Crawler_Monitor_Controller:
    """
    Controller cho API giám sát crawler IA (health check, cảnh báo)
    Quyền admin đã được kiểm tra ở router (required_admin)
    """

    def get_stats(monitor: CrawlerMonitor) -> dict:
        return _envelope(data=monitor.get_health_stats())

    def get_config(monitor: CrawlerMonitor) -> dict:
        return _envelope(data=monitor.config.to_dict())

    async def health_check(monitor: CrawlerMonitor, crawler: str = None, url: str = None) -> dict:
        result = await monitor.perform_health_check(crawler or DEFAULT_CRAWLER, url or DEFAULT_HEALTH_CHECK_URL)
        return _envelope(data=result.to_dict())

    async def run_cycle(monitor: CrawlerMonitor, body: dict) -> dict:
        """
        Chạy 1 chu kỳ giám sát
        - body: {"config": {...}} (tuỳ chọn) ghi đè các khoá cấp 1 của cấu hình cho lần chạy này
        """
        request = _parse(MonitorCycleRequest, body, "Invalid configuration")
        partial = request.config.model_dump(exclude_unset=True) if request.config else {}

        try:
            config = monitor.config.merged(partial)
        except ValueError as ex:
            raise _bad_request("Invalid configuration", str(ex))

        result = await monitor.run_monitoring_cycle(config)
        return _envelope(
            data=result,
            message=(f"Monitoring cycle completed. Checked {len(result['healthChecks'])} URLs, "
                     f"generated {len(result['alerts'])} alerts."),
        )

    async def test_crawler(monitor: CrawlerMonitor, body: dict) -> dict:
        """
        Kiểm tra 1 URL với User-Agent của 1 loại crawler
        - body: {crawlerType, url}
        """
        if not body or not body.get("crawlerType") or not body.get("url"):
            raise _bad_request("Missing required parameters", "crawlerType and url are required")

        request = _parse(CrawlerCheckRequest, body, "Invalid parameters")
        result = await monitor.perform_health_check(request.crawlerType, request.url)
        return _envelope(
            data=result.to_dict(),
            message=f"Health check completed for {request.crawlerType} on {request.url}",
        )
