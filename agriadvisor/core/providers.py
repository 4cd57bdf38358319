"""
External data providers for AgriAdvisor
Weather, market prices and disease classification behind small async interfaces
"""

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, Any, List, Optional

import aiohttp

from agriadvisor.core.models import utcnow


class ProviderError(Exception):
    """Raised when an upstream data source cannot be used"""


class WeatherProvider(ABC):

    @abstractmethod
    async def current(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """Current conditions and short forecast for a point"""


class MarketDataProvider(ABC):

    @abstractmethod
    async def prices(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Latest market price rows"""


class DiseaseClassifier(ABC):

    model_version: str = "unknown"

    @abstractmethod
    async def classify(self, image: bytes, crop: str) -> Dict[str, Any]:
        """Return a diagnosis result with at least a disease name"""


class FakeWeatherProvider(WeatherProvider):
    """Plausible random weather for development and tests"""

    CONDITIONS = ['sunny', 'cloudy', 'rainy', 'partly-cloudy']

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    async def current(self, latitude, longitude):
        rng = self.rng
        today = utcnow().date()
        return {
            'current': {
                'temperature': round(25 + rng.random() * 15, 1),
                'humidity': round(50 + rng.random() * 40, 1),
                'rainfall': round(rng.random() * 10, 1),
                'windSpeed': round(5 + rng.random() * 15, 1),
                'pressure': round(1010 + rng.random() * 20, 1),
                'uvIndex': round(rng.random() * 10, 1),
                'visibility': round(8 + rng.random() * 7, 1),
            },
            'forecast': [
                {
                    'date': (today + timedelta(days=day)).isoformat(),
                    'temperature': {
                        'min': round(18 + rng.random() * 10, 1),
                        'max': round(28 + rng.random() * 12, 1),
                    },
                    'humidity': round(40 + rng.random() * 50, 1),
                    'rainfall': round(rng.random() * 15, 1),
                    'windSpeed': round(3 + rng.random() * 12, 1),
                    'condition': rng.choice(self.CONDITIONS),
                }
                for day in range(7)
            ],
            'location': {'latitude': latitude, 'longitude': longitude, 'name': 'Sample Location'},
        }


class OpenWeatherProvider(WeatherProvider):
    """OpenWeather current conditions, falling back to a secondary provider on failure"""

    def __init__(self, api_key: str, base_url: str = "https://api.openweathermap.org/data/2.5",
                 timeout_seconds: int = 5, fallback: Optional[WeatherProvider] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.fallback = fallback
        self.logger = logging.getLogger(__name__)

    async def current(self, latitude, longitude):
        params = {'lat': latitude, 'lon': longitude, 'appid': self.api_key, 'units': 'metric'}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(f"{self.base_url}/weather", params=params) as response:
                    if response.status != 200:
                        raise ProviderError(f"OpenWeather returned HTTP {response.status}")
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ProviderError) as e:
            if self.fallback is None:
                raise ProviderError(f"Weather lookup failed: {e}") from e
            self.logger.warning(f"OpenWeather API error, using fallback data: {e}")
            return await self.fallback.current(latitude, longitude)

        return {
            'current': {
                'temperature': data['main']['temp'],
                'humidity': data['main']['humidity'],
                'rainfall': data.get('rain', {}).get('1h', 0),
                'windSpeed': data['wind']['speed'] * 3.6,  # m/s to km/h
                'pressure': data['main']['pressure'],
                'uvIndex': 0,
                'visibility': data.get('visibility', 0) / 1000,
            },
            'location': {'latitude': latitude, 'longitude': longitude, 'name': data.get('name')},
        }


class FakeMarketDataProvider(MarketDataProvider):

    CROPS = ['Tomato', 'Wheat', 'Rice', 'Corn', 'Potato', 'Onion', 'Cabbage', 'Carrot']
    MARKETS = {
        'Delhi Mandi': 'Delhi',
        'Mumbai APMC': 'Maharashtra',
        'Bangalore Market': 'Karnataka',
        'Chennai Koyambedu': 'Tamil Nadu',
        'Kolkata Market': 'West Bengal',
    }

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    async def prices(self, limit=50):
        rng = self.rng
        today = utcnow().date().isoformat()
        rows = []
        for crop in self.CROPS:
            for market in list(self.MARKETS)[:rng.randint(2, 4)]:
                rows.append({
                    'crop': crop,
                    'variety': f"{crop} - Grade A",
                    'price': round(15 + rng.random() * 85, 2),
                    'unit': 'per kg',
                    'change': round((rng.random() - 0.5) * 15, 2),
                    'market': market,
                    'state': self.MARKETS[market],
                    'date': today,
                    'quality': rng.choice(['A', 'B', 'C']),
                    'volume': rng.randint(100, 1100),
                })
        return rows[:limit]


class HttpMarketDataProvider(MarketDataProvider):
    """Market price feed returning ``{"records": [...]}``"""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout_seconds: int = 5):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def prices(self, limit=50):
        params = {'format': 'json', 'limit': limit}
        if self.api_key:
            params['api-key'] = self.api_key
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.base_url, params=params) as response:
                    if response.status != 200:
                        raise ProviderError(f"Market feed returned HTTP {response.status}")
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"Market feed unavailable: {e}") from e

        return list(data.get('records') or [])[:limit]


class FakeDiseaseClassifier(DiseaseClassifier):
    """Picks one of a few canned diagnoses"""

    DIAGNOSES = [
        {
            'disease': 'Healthy Crop',
            'confidence': 0.85,
            'severity': 'low',
            'description': 'Your crop appears to be healthy with no visible signs of disease.',
            'symptoms': ['Green, vibrant leaves', 'Normal growth pattern'],
            'treatments': ['Continue current care routine'],
            'prevention': ['Regular monitoring', 'Proper watering'],
            'organicTreatments': ['Maintain organic practices'],
        },
        {
            'disease': 'Bacterial Blight',
            'confidence': 0.78,
            'severity': 'medium',
            'description': 'Bacterial infection causing water-soaked lesions.',
            'symptoms': ['Water-soaked spots', 'Yellow halos', 'Leaf wilting'],
            'treatments': ['Copper-based bactericides', 'Remove infected plants'],
            'prevention': ['Avoid overhead watering', 'Crop rotation'],
            'organicTreatments': ['Neem oil spray', 'Copper sulfate solution'],
        },
        {
            'disease': 'Fungal Leaf Spot',
            'confidence': 0.72,
            'severity': 'medium',
            'description': 'Fungal infection causing circular spots on leaves.',
            'symptoms': ['Circular brown spots', 'Yellow margins', 'Leaf drop'],
            'treatments': ['Fungicide application', 'Remove affected leaves'],
            'prevention': ['Good air circulation', 'Avoid wet foliage'],
            'organicTreatments': ['Baking soda spray', 'Milk solution'],
        },
    ]

    def __init__(self, seed: Optional[int] = None, model_version: str = "fake-1.0"):
        self.rng = random.Random(seed)
        self.model_version = model_version

    async def classify(self, image, crop):
        return dict(self.rng.choice(self.DIAGNOSES))


class RemoteDiseaseClassifier(DiseaseClassifier):
    """Inference service accepting a multipart image upload"""

    def __init__(self, endpoint: str, model_version: str = "remote", timeout_seconds: int = 30):
        self.endpoint = endpoint
        self.model_version = model_version
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def classify(self, image, crop):
        form = aiohttp.FormData()
        form.add_field('crop', crop)
        form.add_field('image', image, filename='crop.jpg', content_type='image/jpeg')
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.endpoint, data=form) as response:
                    if response.status != 200:
                        raise ProviderError(f"Classifier returned HTTP {response.status}")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"Classifier unavailable: {e}") from e

        if not result.get('disease'):
            raise ProviderError("Classifier response has no disease")
        return result


class Providers:
    """The provider set used by the advisory routes"""

    def __init__(self, weather: WeatherProvider, market: MarketDataProvider,
                 classifier: DiseaseClassifier):
        self.weather = weather
        self.market = market
        self.classifier = classifier


def build_providers(config: Dict[str, Any]) -> Providers:
    provider_config = config.get('providers', {})
    weather_config = provider_config.get('weather', {})
    market_config = provider_config.get('market', {})
    classifier_config = provider_config.get('classifier', {})

    if weather_config.get('type') == 'openweather' and weather_config.get('api_key'):
        weather = OpenWeatherProvider(
            weather_config['api_key'],
            weather_config.get('base_url', "https://api.openweathermap.org/data/2.5"),
            fallback=FakeWeatherProvider(),
        )
    else:
        weather = FakeWeatherProvider()

    if market_config.get('type') == 'http' and market_config.get('base_url'):
        market = HttpMarketDataProvider(market_config['base_url'], market_config.get('api_key') or None)
    else:
        market = FakeMarketDataProvider()

    if classifier_config.get('type') == 'remote' and classifier_config.get('endpoint'):
        classifier = RemoteDiseaseClassifier(
            classifier_config['endpoint'], classifier_config.get('model_version', 'remote')
        )
    else:
        classifier = FakeDiseaseClassifier(model_version=classifier_config.get('model_version', 'fake-1.0'))

    return Providers(weather, market, classifier)


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
