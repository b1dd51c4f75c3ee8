#!/usr/bin/env python3
from typing import List


class StealthConfig:
    """Anti-detection configuration for broker sites behind bot checks"""

    def __init__(self, locale: str = "en-US"):
        self.locale = locale

    def get_chrome_args(self) -> List[str]:
        return [
            '--disable-blink-features=AutomationControlled',
            '--disable-dev-shm-usage',
            '--disable-setuid-sandbox',
            '--no-first-run',
            '--no-default-browser-check',
            '--window-size=1920,1080',
            '--user-agent=' + self.get_user_agent(),
        ]

    def get_user_agent(self) -> str:
        return (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        )

    def get_languages(self) -> List[str]:
        primary = self.locale.split("-")[0]
        langs = [self.locale, primary]
        if primary != "en":
            langs += ["en-US", "en"]
        return langs

    def init_script(self) -> str:
        langs = ", ".join(f"'{lang}'" for lang in self.get_languages())
        return """
            // Remove webdriver flag
            Object.defineProperty(navigator, 'webdriver', { get: () => undefined });

            // Realistic plugin list
            Object.defineProperty(navigator, 'plugins', {
                get: () => [
                    {name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer', description: 'Portable Document Format'},
                    {name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai', description: ''},
                    {name: 'Native Client', filename: 'internal-nacl-plugin', description: ''}
                ]
            });

            Object.defineProperty(navigator, 'languages', { get: () => [%s] });
            Object.defineProperty(navigator, 'language', { get: () => '%s' });

            window.chrome = { runtime: {}, loadTimes: function() {}, csi: function() {}, app: {} };

            const originalQuery = window.navigator.permissions?.query;
            if (originalQuery) {
                window.navigator.permissions.query = (parameters) => (
                  parameters.name === 'notifications'
                    ? Promise.resolve({ state: Notification.permission })
                    : originalQuery(parameters)
                );
            }

            Object.defineProperty(navigator, 'hardwareConcurrency', { get: () => 8 });
            Object.defineProperty(navigator, 'deviceMemory', { get: () => 8 });

            delete window.playwright;
            delete window.__playwright;
            delete window.__webdriver_script_fn;
            """ % (langs, self.locale)

    async def apply_to_context(self, context):
        await context.add_init_script(self.init_script())
