"""Tests for the source adapters and the registry."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import respx

from series_sentinel.core.config import SentinelConfig, SourcesConfig
from series_sentinel.core.exceptions import (
    ConfigError,
    ParsingError,
    RateLimitError,
    SourceError,
)
from series_sentinel.core.models import DateHint, SourceType
from series_sentinel.sources import (
    AlphaVantageSource,
    CsvSource,
    DBnomicsSource,
    EurostatSource,
    FredSource,
    SourceRegistry,
    WorldBankSource,
    YahooFinanceSource,
    create_registry,
)
from series_sentinel.sources.csv_source import is_likely_csv, parse_csv_points
from series_sentinel.sources.eurostat import flatten_jsonstat, parse_filters
from series_sentinel.sources.yahoo import parse_history_csv

FRED_OBS = "https://api.stlouisfed.org/fred/series/observations"
FRED_SERIES = "https://api.stlouisfed.org/fred/series"
WB_URL = "https://api.worldbank.org/v2/country/US/indicator/NY.GDP.MKTP.CD"
AV_URL = "https://www.alphavantage.co/query"
DBN_URL = "https://api.db.nomics.world/v22/series/IMF/IFS/A.US.NGDP"
ESTAT_URL = "https://ec.europa.eu/eurostat/api/dissemination/statistics/1.0/data/prc_hicp_manr"
YAHOO_URL = "https://query1.finance.yahoo.com/v7/finance/download/SPY"


# --- Fixtures ---


@pytest.fixture
async def fred():
    source = FredSource(api_key="test-key")
    yield source
    await source.close()


@pytest.fixture
async def fred_no_key():
    source = FredSource()
    yield source
    await source.close()


@pytest.fixture
async def worldbank():
    source = WorldBankSource()
    yield source
    await source.close()


@pytest.fixture
async def alpha():
    source = AlphaVantageSource(api_key="demo")
    yield source
    await source.close()


@pytest.fixture
async def dbnomics():
    source = DBnomicsSource()
    yield source
    await source.close()


@pytest.fixture
async def eurostat():
    source = EurostatSource()
    yield source
    await source.close()


@pytest.fixture
async def yahoo():
    source = YahooFinanceSource()
    yield source
    await source.close()


@pytest.fixture
async def csv_source():
    source = CsvSource()
    yield source
    await source.close()


@pytest.fixture
async def confined_csv_source(tmp_path: Path):
    """CSV source limited to ``tmp_path / "base"``."""
    (tmp_path / "base").mkdir()
    source = CsvSource(base_dir=tmp_path / "base")
    yield source
    await source.close()


@pytest.fixture
def hicp_jsonstat() -> dict:
    """Two geos × three months; DE has a gap in February."""
    return {
        "label": "HICP - monthly data (annual rate of change)",
        "id": ["geo", "time"],
        "size": [2, 3],
        "dimension": {
            "geo": {"category": {"index": {"DE": 0, "FR": 1}}},
            "time": {"category": {"index": {"2024M01": 0, "2024M02": 1, "2024M03": 2}}},
        },
        # flat = geo * 3 + time
        "value": {"0": 3.1, "2": 2.3, "3": 3.4, "4": 3.2, "5": 2.4},
    }


YAHOO_CSV = (
    "Date,Open,High,Low,Close,Adj Close,Volume\n"
    "2024-01-02,472.16,473.67,470.49,472.65,468.79,123623700\n"
    "2024-01-03,470.43,471.19,468.17,468.79,464.96,103585900\n"
    "2024-01-04,null,null,null,null,null,null\n"
)


@pytest.mark.unit
class TestFredSource:
    @respx.mock
    async def test_fetch(self, fred):
        route = respx.get(FRED_OBS).mock(
            return_value=httpx.Response(
                200,
                json={
                    "observations": [
                        {"date": "2023-10-01", "value": "27610.128"},
                        {"date": "2024-01-01", "value": "."},
                    ]
                },
            )
        )

        points = await fred.fetch_data({"series_id": "gdp", "start_date": "2023-01-01"})

        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("2023-10-01", "27610.128"),
            ("2024-01-01", "."),
        ]
        params = route.calls.last.request.url.params
        assert params["series_id"] == "GDP"
        assert params["api_key"] == "test-key"
        assert params["file_type"] == "json"
        assert params["observation_start"] == "2023-01-01"

    async def test_missing_api_key(self, fred_no_key):
        assert fred_no_key.is_configured() is False
        with pytest.raises(ConfigError, match="API key not configured"):
            await fred_no_key.fetch_data({"series_id": "GDP"})

    async def test_connection_without_key_is_not_raised(self, fred_no_key):
        result = await fred_no_key.test_connection({"series_id": "GDP"})
        assert result.ok is False
        assert "API key" in result.message

    async def test_invalid_series_id(self, fred):
        with pytest.raises(ConfigError, match="Invalid FRED series ID"):
            await fred.fetch_data({"series_id": "GDP!?"})

    async def test_missing_series_id(self, fred):
        with pytest.raises(ConfigError, match="FRED Series ID is required"):
            await fred.fetch_data({})

    @respx.mock
    async def test_http_error_uses_provider_message(self, fred):
        respx.get(FRED_OBS).mock(
            return_value=httpx.Response(
                400, json={"error_code": 400, "error_message": "Bad Request. The series does not exist."}
            )
        )
        with pytest.raises(SourceError) as exc_info:
            await fred.fetch_data({"series_id": "NOPE"})
        assert str(exc_info.value) == (
            "FRED API error: Bad request - check series ID format: "
            "Bad Request. The series does not exist."
        )
        assert exc_info.value.context["status_code"] == 400

    @respx.mock
    async def test_rate_limited(self, fred):
        respx.get(FRED_OBS).mock(
            return_value=httpx.Response(429, headers={"Retry-After": "20"})
        )
        with pytest.raises(RateLimitError) as exc_info:
            await fred.fetch_data({"series_id": "GDP"})
        assert exc_info.value.context["retry_after"] == 20

    @respx.mock
    async def test_timeout_not_retried(self, fred):
        route = respx.get(FRED_OBS).mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(SourceError, match="timed out"):
            await fred.fetch_data({"series_id": "GDP"})
        assert route.call_count == 1

    @respx.mock
    async def test_malformed_payload(self, fred):
        respx.get(FRED_OBS).mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(ParsingError):
            await fred.fetch_data({"series_id": "GDP"})

    @respx.mock
    async def test_connection_success(self, fred):
        respx.get(FRED_SERIES).mock(
            return_value=httpx.Response(
                200, json={"seriess": [{"id": "GDP", "title": "Gross Domestic Product"}]}
            )
        )
        result = await fred.test_connection({"series_id": "GDP"})
        assert result.ok is True
        assert result.message == (
            "Connection successful! Found series: Gross Domestic Product (GDP)"
        )

    @respx.mock
    async def test_connection_http_error(self, fred):
        respx.get(FRED_SERIES).mock(return_value=httpx.Response(404))
        result = await fred.test_connection({"series_id": "XYZ"})
        assert result.ok is False
        assert result.message == "FRED API error: Series not found"

    @respx.mock
    async def test_search(self, fred):
        route = respx.get(FRED_SERIES + "/search").mock(
            return_value=httpx.Response(
                200,
                json={
                    "seriess": [
                        {"id": "UNRATE", "title": "Unemployment Rate", "frequency": "Monthly", "units": "Percent"}
                    ]
                },
            )
        )
        results = await fred.search("unemployment", limit=5)
        assert results[0]["id"] == "UNRATE"
        assert results[0]["units"] == "Percent"
        params = route.calls.last.request.url.params
        assert params["search_text"] == "unemployment"
        assert params["limit"] == "5"

    async def test_search_blank_text(self, fred):
        assert await fred.search("   ") == []

    async def test_describe(self, fred):
        info = fred.describe()
        assert info.source_type == SourceType.FRED
        assert info.requires_api_key is True
        assert info.configured is True
        assert info.rate_limit.requests == 120
        assert [f.key for f in info.fields] == ["series_id", "start_date", "end_date"]


@pytest.mark.unit
class TestWorldBankSource:
    @respx.mock
    async def test_fetch_single_page(self, worldbank):
        route = respx.get(WB_URL).mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"page": 1, "pages": 1, "per_page": 10000, "total": 2},
                    [{"date": "2023", "value": 27360935000000}, {"date": "2022", "value": None}],
                ],
            )
        )

        points = await worldbank.fetch_data(
            {"indicator_code": "NY.GDP.MKTP.CD", "country_code": "us", "start_year": "2000"}
        )

        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("2023", 27360935000000),
            ("2022", None),
        ]
        params = route.calls.last.request.url.params
        assert params["format"] == "json"
        assert params["date"].startswith("2000:")

    @respx.mock
    async def test_fetch_paginates(self, worldbank):
        route = respx.get(WB_URL).mock(
            side_effect=[
                httpx.Response(
                    200,
                    json=[{"page": 1, "pages": 2, "total": 15000}, [{"date": "2023", "value": 1.0}]],
                ),
                httpx.Response(
                    200,
                    json=[{"page": 2, "pages": 2, "total": 15000}, [{"date": "1990", "value": 2.0}]],
                ),
            ]
        )

        points = await worldbank.fetch_data({"indicator_code": "NY.GDP.MKTP.CD"})

        assert route.call_count == 2
        assert route.calls[1].request.url.params["page"] == "2"
        assert [p.raw_date for p in points] == ["2023", "1990"]

    @respx.mock
    async def test_api_error_message(self, worldbank):
        respx.get(WB_URL).mock(
            return_value=httpx.Response(
                200,
                json=[
                    {
                        "message": [
                            {"id": "120", "key": "Invalid value", "value": "The provided parameter value is not valid"}
                        ]
                    }
                ],
            )
        )
        with pytest.raises(ParsingError, match="The provided parameter value is not valid"):
            await worldbank.fetch_data({"indicator_code": "NY.GDP.MKTP.CD"})

    @respx.mock
    async def test_connection_no_data(self, worldbank):
        respx.get(WB_URL).mock(
            return_value=httpx.Response(200, json=[{"page": 0, "total": 0}, None])
        )
        result = await worldbank.test_connection({"indicator_code": "NY.GDP.MKTP.CD"})
        assert result.ok is False
        assert result.message == "No data found for this indicator and country combination"

    async def test_yearly_hint(self, worldbank):
        assert worldbank.date_hint({}) == DateHint.YEARLY


@pytest.mark.unit
class TestAlphaVantageSource:
    @respx.mock
    async def test_daily_close(self, alpha):
        route = respx.get(AV_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "Meta Data": {"2. Symbol": "IBM"},
                    "Time Series (Daily)": {
                        "2024-01-03": {"1. open": "161.0", "4. close": "160.10"},
                        "2024-01-02": {"1. open": "162.8", "4. close": "158.16"},
                    },
                },
            )
        )

        points = await alpha.fetch_data({"function": "TIME_SERIES_DAILY", "symbol": "ibm"})

        assert {p.raw_date: p.raw_value for p in points} == {
            "2024-01-03": "160.10",
            "2024-01-02": "158.16",
        }
        params = route.calls.last.request.url.params
        assert params["symbol"] == "IBM"
        assert params["apikey"] == "demo"
        assert params["outputsize"] == "compact"

    @respx.mock
    async def test_economic_indicator(self, alpha):
        respx.get(AV_URL).mock(
            return_value=httpx.Response(
                200,
                json={"name": "Real GDP", "data": [{"date": "2023-01-01", "value": "22225.35"}]},
            )
        )
        points = await alpha.fetch_data({"function": "REAL_GDP"})
        assert [(p.raw_date, p.raw_value) for p in points] == [("2023-01-01", "22225.35")]

    @respx.mock
    async def test_rate_limit_note(self, alpha):
        respx.get(AV_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "Note": "Thank you for using Alpha Vantage! Our standard API call "
                    "frequency is 5 calls per minute and 100 calls per day."
                },
            )
        )
        with pytest.raises(RateLimitError, match="rate limit exceeded"):
            await alpha.fetch_data({"function": "TIME_SERIES_DAILY", "symbol": "IBM"})

    @respx.mock
    async def test_error_message_payload(self, alpha):
        respx.get(AV_URL).mock(
            return_value=httpx.Response(200, json={"Error Message": "Invalid API call."})
        )
        with pytest.raises(SourceError, match="Alpha Vantage Error: Invalid API call."):
            await alpha.fetch_data({"function": "TIME_SERIES_DAILY", "symbol": "IBM"})

    @respx.mock
    async def test_missing_series_key(self, alpha):
        respx.get(AV_URL).mock(return_value=httpx.Response(200, json={"Meta Data": {}}))
        with pytest.raises(ParsingError, match="Time Series \\(Daily\\)"):
            await alpha.fetch_data({"function": "TIME_SERIES_DAILY", "symbol": "IBM"})

    async def test_fx_params(self, alpha):
        params = alpha.build_params(
            {"function": "fx_daily", "from_symbol": "eur", "to_symbol": "usd"}
        )
        assert params == {
            "function": "FX_DAILY",
            "from_symbol": "EUR",
            "to_symbol": "USD",
            "outputsize": "compact",
        }

    async def test_symbol_required(self, alpha):
        with pytest.raises(ConfigError, match="'symbol' is required"):
            alpha.build_params({"function": "TIME_SERIES_WEEKLY"})

    async def test_unsupported_function(self, alpha):
        with pytest.raises(ConfigError, match="Unsupported Alpha Vantage function"):
            alpha.build_params({"function": "NEWS_SENTIMENT"})

    async def test_crypto_value_pick(self, alpha):
        points = alpha.extract_points(
            "DIGITAL_CURRENCY_DAILY",
            {
                "Time Series (Digital Currency Daily)": {
                    "2024-01-02": {"1a. open (USD)": "42000", "4a. close (USD)": "45000.5"}
                }
            },
        )
        assert points[0].raw_value == "45000.5"

    @respx.mock
    async def test_crypto_close_follows_market(self, alpha):
        route = respx.get(AV_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "Time Series (Digital Currency Daily)": {
                        "2024-01-02": {"1a. open (EUR)": "40000", "4a. close (EUR)": "41000"}
                    }
                },
            )
        )
        points = await alpha.fetch_data(
            {"function": "DIGITAL_CURRENCY_DAILY", "symbol": "btc", "market": "eur"}
        )
        assert points[0].raw_value == "41000"
        assert route.calls.last.request.url.params["market"] == "EUR"

    async def test_global_quote(self, alpha):
        points = alpha.extract_points(
            "GLOBAL_QUOTE",
            {"Global Quote": {"05. price": "160.10", "07. latest trading day": "2024-01-03"}},
        )
        assert [(p.raw_date, p.raw_value) for p in points] == [("2024-01-03", "160.10")]


@pytest.mark.unit
class TestDBnomicsSource:
    @respx.mock
    async def test_parallel_arrays(self, dbnomics):
        respx.get(DBN_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "series": {
                        "docs": [
                            {
                                "series_code": "A.US.NGDP",
                                "period": ["2021", "2022", "2023"],
                                "value": [100.5, "NA", 104.2],
                            }
                        ]
                    }
                },
            )
        )

        points = await dbnomics.fetch_data({"series_code": "IMF/IFS/A.US.NGDP"})

        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("2021", 100.5),
            ("2022", "NA"),
            ("2023", 104.2),
        ]

    @respx.mock
    async def test_provider_prefix(self, dbnomics):
        route = respx.get(DBN_URL).mock(
            return_value=httpx.Response(
                200, json={"series": {"docs": [{"observations": [{"period": "2023-Q1", "value": 1.5}]}]}}
            )
        )
        points = await dbnomics.fetch_data({"series_code": "IFS/A.US.NGDP", "provider": "IMF"})
        assert route.called
        assert [(p.raw_date, p.raw_value) for p in points] == [("2023-Q1", 1.5)]

    async def test_invalid_code(self, dbnomics):
        with pytest.raises(ConfigError, match="provider/dataset/series"):
            await dbnomics.fetch_data({"series_code": "IMF/IFS"})

    @respx.mock
    async def test_not_found(self, dbnomics):
        respx.get(DBN_URL).mock(return_value=httpx.Response(404))
        with pytest.raises(SourceError, match="Series not found in DBnomics"):
            await dbnomics.fetch_data({"series_code": "IMF/IFS/A.US.NGDP"})

    @respx.mock
    async def test_empty_docs(self, dbnomics):
        respx.get(DBN_URL).mock(return_value=httpx.Response(200, json={"series": {"docs": []}}))
        result = await dbnomics.test_connection({"series_code": "IMF/IFS/A.US.NGDP"})
        assert result.ok is False


@pytest.mark.unit
class TestEurostat:
    def test_flatten_first_non_null_per_period(self, hicp_jsonstat):
        points = flatten_jsonstat(hicp_jsonstat)
        # Feb has no DE value, so FR's wins
        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("2024M01", 3.1),
            ("2024M02", 3.2),
            ("2024M03", 2.3),
        ]

    def test_flatten_list_values(self):
        data = {
            "id": ["freq", "time"],
            "size": [1, 2],
            "dimension": {"time": {"category": {"index": {"2022": 0, "2023": 1}}}},
            "value": [1.0, None],
        }
        assert [p.raw_date for p in flatten_jsonstat(data)] == ["2022"]

    def test_flatten_without_time_dimension(self):
        with pytest.raises(ParsingError, match="No time dimension"):
            flatten_jsonstat({"id": ["geo"], "size": [1], "dimension": {}, "value": {}})

    def test_flatten_invalid_structure(self):
        with pytest.raises(ParsingError):
            flatten_jsonstat({"value": {}})

    def test_parse_filters(self):
        assert parse_filters("geo=DE\nunit=RCH_A\n\nbogus\ncoicop=CP00") == [
            ("geo", "DE"),
            ("unit", "RCH_A"),
            ("coicop", "CP00"),
        ]
        assert parse_filters("geo=DE&geo=FR") == [("geo", "DE"), ("geo", "FR")]
        assert parse_filters(None) == []

    @respx.mock
    async def test_fetch(self, eurostat, hicp_jsonstat):
        route = respx.get(ESTAT_URL).mock(return_value=httpx.Response(200, json=hicp_jsonstat))

        points = await eurostat.fetch_data(
            {"dataset_code": "prc_hicp_manr", "filters": "geo=DE", "start_period": "2024-01"}
        )

        assert len(points) == 3
        params = route.calls.last.request.url.params
        assert params["format"] == "JSON"
        assert params["geo"] == "DE"
        assert params["sinceTimePeriod"] == "2024-01"

    @respx.mock
    async def test_error_label(self, eurostat):
        respx.get(ESTAT_URL).mock(
            return_value=httpx.Response(
                400, json={"error": [{"status": 400, "label": "Dataset not found"}]}
            )
        )
        with pytest.raises(SourceError, match="Eurostat API error: Dataset not found"):
            await eurostat.fetch_data({"dataset_code": "prc_hicp_manr"})

    async def test_time_format_hint(self, eurostat):
        assert eurostat.date_hint({"time_format": "monthly"}) == DateHint.MONTHLY
        assert eurostat.date_hint({"time_format": "weird"}) == DateHint.AUTO


@pytest.mark.unit
class TestYahoo:
    def test_parse_adj_close(self):
        points = parse_history_csv(YAHOO_CSV)
        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("2024-01-02", "468.79"),
            ("2024-01-03", "464.96"),
            ("2024-01-04", "null"),
        ]

    def test_parse_volume(self):
        points = parse_history_csv(YAHOO_CSV, "volume")
        assert points[0].raw_value == "123623700"

    def test_unexpected_header(self):
        with pytest.raises(ParsingError, match="Invalid CSV format"):
            parse_history_csv("<html>blocked</html>")

    def test_unknown_data_type(self):
        with pytest.raises(ConfigError):
            parse_history_csv(YAHOO_CSV, "dividends")

    @respx.mock
    async def test_fetch(self, yahoo):
        route = respx.get(YAHOO_URL).mock(return_value=httpx.Response(200, text=YAHOO_CSV))

        points = await yahoo.fetch_data({"symbol": "spy", "period": "1y", "data_type": "close"})

        assert [p.raw_value for p in points][:2] == ["472.65", "468.79"]
        params = route.calls.last.request.url.params
        assert params["interval"] == "1d"
        assert int(params["period2"]) - int(params["period1"]) == 365 * 86400

    async def test_unknown_period(self, yahoo):
        with pytest.raises(ConfigError, match="Unknown history period"):
            await yahoo.fetch_data({"symbol": "SPY", "period": "3w"})


@pytest.mark.unit
class TestCsvSource:
    def test_parse_by_header_name(self):
        text = "Month;Rate\n2024-01;5.33\n2024-02;5.33\n"
        points = parse_csv_points(text, "month", "RATE", delimiter=";")
        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("2024-01", "5.33"),
            ("2024-02", "5.33"),
        ]

    def test_parse_by_index_without_header(self):
        points = parse_csv_points("2024,1\n2025\n2026,3\n", has_header=False)
        # Short row skipped
        assert [p.raw_date for p in points] == ["2024", "2026"]

    def test_unknown_column_name(self):
        with pytest.raises(ParsingError, match="not found in CSV header"):
            parse_csv_points("date,value\n2024,1\n", "when", "value")

    def test_is_likely_csv(self):
        assert is_likely_csv("a,b\n1,2\n") is True
        assert is_likely_csv("just text\nno commas\n") is False
        assert is_likely_csv("") is False

    async def test_fetch_local_file(self, csv_source, tmp_path: Path):
        path = tmp_path / "rates.csv"
        path.write_text("\ufeffdate,value\n01/15/2024,1.5\n02/15/2024,2.5\n", encoding="utf-8")

        config = {"csv_source": "file", "csv_file": str(path), "date_format": "m/d/Y"}
        points = await csv_source.fetch_data(config)

        assert [(p.raw_date, p.raw_value) for p in points] == [
            ("01/15/2024", "1.5"),
            ("02/15/2024", "2.5"),
        ]
        assert csv_source.date_hint(config) == "%m/%d/%Y"

    async def test_missing_file(self, csv_source, tmp_path: Path):
        with pytest.raises(SourceError, match="CSV file not found"):
            await csv_source.fetch_data(
                {"csv_source": "file", "csv_file": str(tmp_path / "absent.csv")}
            )

    @respx.mock
    async def test_fetch_url(self, csv_source):
        respx.get("https://example.org/data.csv").mock(
            return_value=httpx.Response(200, text="date\tvalue\n2024-01-01\t7\n")
        )
        points = await csv_source.fetch_data(
            {"csv_url": "https://example.org/data.csv", "delimiter": "\\t"}
        )
        assert [(p.raw_date, p.raw_value) for p in points] == [("2024-01-01", "7")]

    @pytest.mark.parametrize(
        "config, message",
        [
            ({}, "CSV URL is required"),
            ({"csv_source": "file"}, "CSV file path is required"),
            ({"csv_source": "ftp"}, "Unknown CSV source"),
            ({"csv_url": "https://x", "delimiter": ":"}, "Unsupported delimiter"),
        ],
    )
    async def test_validate_config(self, csv_source, config, message):
        with pytest.raises(ConfigError, match=message):
            csv_source.validate_config(config)

    @respx.mock
    async def test_connection_rejects_non_csv(self, csv_source):
        respx.get("https://example.org/page").mock(
            return_value=httpx.Response(200, text="<html>\n<body>hi</body>\n</html>")
        )
        result = await csv_source.test_connection({"csv_url": "https://example.org/page"})
        assert result.ok is False

    async def test_base_dir_relative_path(self, confined_csv_source, tmp_path: Path):
        (tmp_path / "base" / "imports").mkdir()
        (tmp_path / "base" / "imports" / "rates.csv").write_text("date,value\n2024-01-01,1\n")
        points = await confined_csv_source.fetch_data(
            {"csv_source": "file", "csv_file": "imports/rates.csv"}
        )
        assert [p.raw_value for p in points] == ["1"]

    @pytest.mark.parametrize("csv_file", ["../outside.csv", "/etc/passwd", "imports/../../x.csv"])
    async def test_base_dir_rejects_escape(self, confined_csv_source, tmp_path: Path, csv_file):
        (tmp_path / "outside.csv").write_text("date,value\n2024-01-01,1\n")
        config = {"csv_source": "file", "csv_file": csv_file}
        with pytest.raises(ConfigError, match="CSV file must be inside"):
            confined_csv_source.validate_config(config)
        result = await confined_csv_source.test_connection(config)
        assert result.ok is False
        assert result.message.startswith("CSV file must be inside")

    async def test_base_dir_ignores_url_mode(self, confined_csv_source):
        confined_csv_source.validate_config({"csv_url": "https://example.org/data.csv"})

    async def test_registry_passes_base_dir(self, tmp_path: Path):
        config = SentinelConfig(sources=SourcesConfig(csv_base_dir=str(tmp_path)))
        async with create_registry(config) as registry:
            with pytest.raises(ConfigError, match="CSV file must be inside"):
                registry.get("csv").validate_config({"csv_source": "file", "csv_file": "/etc/hosts"})


@pytest.mark.unit
class TestRegistry:
    async def test_create_registry_has_every_source(self):
        config = SentinelConfig(sources=SourcesConfig(fred_api_key="abc"))
        async with create_registry(config) as registry:
            assert set(registry.source_types) == set(SourceType)
            described = {info.source_type: info for info in registry.describe()}
            assert described[SourceType.FRED].configured is True
            assert described[SourceType.ALPHAVANTAGE].configured is False
            assert described[SourceType.CSV].requires_api_key is False

    async def test_unknown_type(self):
        registry = SourceRegistry()
        with pytest.raises(ConfigError, match="Unknown source type: quandl"):
            registry.get("quandl")
        with pytest.raises(ConfigError):
            registry.get(SourceType.FRED)

    def test_register_rejects_non_adapter(self):
        with pytest.raises(TypeError):
            SourceRegistry().register(object())

    def test_register_and_lookup(self, fake_adapter):
        registry = SourceRegistry()
        registry.register(fake_adapter)
        assert "fred" in registry
        assert registry.get("fred") is fake_adapter
