import httpx
import asyncio
from typing import Optional, Dict, Any
import logging
from sapsync.core.config import settings
from sapsync.schemas.sap import SapContext
from sapsync.services.interfaces import CustomerDataSource

logger = logging.getLogger(__name__)

class SapApiError(Exception):
    """Базовое исключение для ошибок API SAP"""
    pass

class SapConnectionError(SapApiError):
    """Ошибка подключения к SAP"""
    pass

class SapAuthError(SapApiError):
    """Ошибка аутентификации в SAP"""
    pass

class SapResponseError(SapApiError):
    """Ошибка в ответе от SAP"""
    def __init__(self, message: str, status_code: int, response: Optional[dict] = None):
        self.status_code = status_code
        self.response = response
        super().__init__(message)

# Функциональные модули SAP
CUSTOMER_ENDPOINT = "/ZSDO_EBU_ORDERS_ACCESS"
MATERIALS_ENDPOINT = "/ZSDO_EBU_LOAD_MATERIALS"
PRICE_ENDPOINT = "/ZSDO_EBU_SHOW_MATERIAL_PRICE"

class SapClient(CustomerDataSource):
    """Клиент для работы с JSON API SAP"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        verify: Optional[bool] = None
    ):
        self.base_url = (base_url or settings.SAP_BASE_URL).rstrip('/')
        self.username = username if username is not None else settings.SAP_USERNAME
        self.password = password if password is not None else settings.SAP_PASSWORD
        self.timeout = timeout or settings.SAP_TIMEOUT
        self.max_retries = max_retries or settings.SAP_MAX_RETRIES
        self.verify = settings.SAP_VERIFY_SSL if verify is None else verify

        # Сессия HTTP
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def connect(self):
        """Создание HTTP сессии"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify,
                auth=(self.username, self.password) if self.username else None,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={
                    "User-Agent": "SapSync-Integration/1.0",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                }
            )
            logger.info(f"Connected to SAP API at {self.base_url}")

    async def disconnect(self):
        """Закрытие HTTP сессии"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from SAP API")

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST запрос с повторными попытками при сетевых ошибках"""

        if self._client is None:
            await self.connect()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"Request to SAP: POST {url} (attempt {attempt + 1})")

                response = await self._client.post(url, json=payload)

                if response.status_code >= 400:
                    error_msg = f"SAP API error: {response.status_code}"
                    error_data = None
                    try:
                        error_data = response.json()
                        error_msg = f"{error_msg} - {error_data}"
                    except ValueError:
                        error_msg = f"{error_msg} - {response.text[:200]}"

                    if response.status_code == 401:
                        raise SapAuthError(error_msg)
                    elif response.status_code in [502, 503, 504]:
                        raise SapConnectionError(error_msg)
                    else:
                        raise SapResponseError(error_msg, response.status_code, error_data)

                if not response.content:
                    return {}

                content = response.json()
                if not isinstance(content, dict):
                    raise SapResponseError(
                        f"SAP API returned unexpected payload type: {type(content).__name__}",
                        response.status_code
                    )

                logger.debug(f"SAP API response from {endpoint}: status={response.status_code}, "
                             f"size={len(response.content)}")
                return content

            except (httpx.TimeoutException, httpx.ConnectError, httpx.NetworkError) as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"Failed to connect to SAP after {self.max_retries} attempts: {e}")
                    raise SapConnectionError(f"Connection failed: {e}") from e

                # Экспоненциальная задержка
                wait_time = 2 ** attempt
                logger.warning(f"Retrying in {wait_time}s... (attempt {attempt + 1})")
                await asyncio.sleep(wait_time)

            except SapApiError:
                raise

            except Exception as e:
                logger.error(f"Unexpected error during SAP request to {endpoint}: {e}")
                raise SapApiError(f"Unexpected error: {e}") from e

        raise SapConnectionError(f"No attempts made for {endpoint}")

    async def fetch_customer(self, sales_org: str, customer_id: str) -> Dict[str, Any]:
        """Данные клиента вместе со структурами для загрузки материалов"""
        logger.info(f"Fetching customer data from SAP: sales_org={sales_org}, customer_id={customer_id}")

        return await self._post(CUSTOMER_ENDPOINT, {
            "I_VKORG": sales_org,
            "I_FORCE_KUNNR": customer_id,
        })

    async def fetch_material_list(self, context: SapContext) -> Dict[str, Any]:
        """Список материалов клиента"""
        logger.info(f"Loading materials from SAP for customer {context.sold_to.get('KUNNR', 'N/A')}")

        return await self._post(MATERIALS_ENDPOINT, context.to_request())

    async def fetch_material_price(
        self,
        customer_id: str,
        material_number: str,
        context: SapContext,
        position_number: Optional[str] = None
    ) -> Dict[str, Any]:
        """Цена материала для клиента. POSNR уточняет позицию"""
        logger.info(f"Fetching material price from SAP: customer_id={customer_id}, "
                    f"material_number={material_number}, posnr={position_number or 'none'}")

        material = {"MATNR": material_number}
        if position_number:
            material["POSNR"] = position_number

        payload = context.to_request()
        payload["IN_WA_MATNR"] = material

        return await self._post(PRICE_ENDPOINT, payload)
