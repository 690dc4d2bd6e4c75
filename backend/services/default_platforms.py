"""
Default platform configurations seeded by PlatformRegistry.initialize_default_platforms.

Top-level keys match Platform columns; the JSON blobs (privacy_page_urls,
scraping_config) use the camelCase keys the browser extension reads.
"""

DEFAULT_PLATFORM_CONFIGS = [
    {
        'name': 'Google',
        'slug': 'google',
        'domain': 'google.com',
        'description': 'Google privacy and ad settings',
        'logo_url': 'https://www.google.com/favicon.ico',
        'website_url': 'https://myaccount.google.com/privacy',
        'privacy_page_urls': {
            'main': 'https://myaccount.google.com/privacy',
            'ads': 'https://adssettings.google.com/',
            'activity': 'https://myactivity.google.com/',
            'data': 'https://takeout.google.com/',
        },
        'scraping_config': {
            'selectors': {
                'web-activity': {'selector': '[data-id="WAA"] [role="switch"]', 'type': 'toggle'},
                'location-history': {'selector': '[data-id="LH"] [role="switch"]', 'type': 'toggle'},
                'ad-personalization': {'selector': '[data-id="AdsPersonalization"] [role="switch"]', 'type': 'toggle'},
                'youtube-history': {'selector': '[data-id="YTH"] [role="switch"]', 'type': 'toggle'},
            },
            'waitForSelectors': ['[role="switch"]'],
            'rateLimit': {'requestsPerMinute': 5, 'cooldownMinutes': 2},
        },
        'manifest_permissions': [
            '*://myaccount.google.com/*',
            '*://adssettings.google.com/*',
            '*://myactivity.google.com/*',
        ],
        'is_active': True,
        'is_supported': True,
        'requires_auth': True,
        'config_version': '1.0.0',
    },
    {
        'name': 'Facebook',
        'slug': 'facebook',
        'domain': 'facebook.com',
        'description': 'Facebook privacy and ad preferences',
        'logo_url': 'https://www.facebook.com/favicon.ico',
        'website_url': 'https://www.facebook.com/privacy/explanation',
        'privacy_page_urls': {
            'main': 'https://www.facebook.com/settings/?tab=privacy',
            'ads': 'https://www.facebook.com/adpreferences',
        },
        'scraping_config': {
            'selectors': {
                'future-posts': {
                    'selector': '[data-testid="privacy_selector"] [role="button"]',
                    'type': 'select',
                    'expectedValues': ['Public', 'Friends', 'Only me'],
                },
                'friend-requests': {
                    'selector': '[data-testid="friend_requests_selector"] [role="button"]',
                    'type': 'select',
                    'expectedValues': ['Everyone', 'Friends of friends'],
                },
                'ad-preferences': {'selector': '[data-testid="ads_based_on_data"] [role="switch"]', 'type': 'toggle'},
            },
            'waitForSelectors': ['[data-testid="privacy_selector"]'],
            'rateLimit': {'requestsPerMinute': 3, 'cooldownMinutes': 5},
        },
        'manifest_permissions': [
            '*://www.facebook.com/*',
            '*://facebook.com/*',
        ],
        'is_active': True,
        'is_supported': True,
        'requires_auth': True,
        'config_version': '1.0.0',
    },
    {
        'name': 'LinkedIn',
        'slug': 'linkedin',
        'domain': 'linkedin.com',
        'description': 'LinkedIn privacy settings',
        'logo_url': 'https://www.linkedin.com/favicon.ico',
        'website_url': 'https://www.linkedin.com/psettings/',
        'privacy_page_urls': {
            'main': 'https://www.linkedin.com/psettings/',
        },
        'scraping_config': {
            'selectors': {
                'public-profile-visibility': {
                    'selector': '[data-control-name="public_profile"] input[type="radio"]:checked',
                    'type': 'radio',
                    'expectedValues': ['public', 'limited'],
                },
                'activity-broadcasts': {
                    'selector': '[data-control-name="activity_feed"] input[type="checkbox"]',
                    'type': 'toggle',
                },
            },
            'waitForSelectors': ['[data-control-name="public_profile"]'],
            'rateLimit': {'requestsPerMinute': 5, 'cooldownMinutes': 3},
        },
        'manifest_permissions': [
            '*://www.linkedin.com/*',
        ],
        'is_active': True,
        'is_supported': True,
        'requires_auth': True,
        'config_version': '1.0.0',
    },
    {
        'name': 'OpenAI',
        'slug': 'openai',
        'domain': 'openai.com',
        'description': 'OpenAI account privacy settings',
        'logo_url': 'https://openai.com/favicon.ico',
        'website_url': 'https://platform.openai.com/account',
        'privacy_page_urls': {
            'main': 'https://platform.openai.com/account/data-controls',
        },
        'scraping_config': {
            'selectors': {
                'data-controls': {'selector': '[data-testid="data-controls-toggle"]', 'type': 'toggle'},
                'conversation-history': {'selector': '[data-testid="chat-history-toggle"]', 'type': 'toggle'},
            },
            'waitForSelectors': ['[data-testid="data-controls-toggle"]'],
            'rateLimit': {'requestsPerMinute': 10, 'cooldownMinutes': 1},
        },
        'manifest_permissions': [
            '*://platform.openai.com/*',
            '*://chat.openai.com/*',
        ],
        'is_active': True,
        'is_supported': True,
        'requires_auth': True,
        'config_version': '1.0.0',
    },
]
