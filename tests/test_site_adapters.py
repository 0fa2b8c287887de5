"""
Tests for the portal-specific adapters and sitemap discovery.

Fixture pages are trimmed copies of the portals' markup, keeping only the
elements the adapters read.
"""

import pytest

from ingestion.exceptions import ExtractionError
from ingestion.extractors import ImobiliareAdapter, OlxAdapter, StoriaAdapter, pick_adapter
from ingestion.extractors.sitemap import is_sitemap_url, parse_sitemap
from ingestion.models import CrawlJob, CrawlJobKind
from ingestion.queue import crawl_queue

IMOBILIARE_LIST_URL = "https://www.imobiliare.ro/vanzare-apartamente/bucuresti"

IMOBILIARE_LIST = """
<html><body>
  <div class="box-anunt">
    <a href="/vanzare-apartamente/bucuresti/floreasca/apartament-de-vanzare-2-camere-X1A2B3">Apartament</a>
  </div>
  <div class="box-anunt">
    <a href="https://www.imobiliare.ro/vanzare-garsoniere/bucuresti/titan/garsoniera-de-vanzare-X9Z8Y7">Garsoniera</a>
  </div>
  <a href="/vanzare-apartamente/bucuresti?pret=100000">Filtru pret</a>
  <a href="https://partener.ro/vanzare-apartamente/123">Partener</a>
  <a href="/inchirieri-apartamente/bucuresti/1">Inchiriere</a>
  <a rel="next" href="/vanzare-apartamente/bucuresti?pagina=2">2</a>
</body></html>
"""

IMOBILIARE_DETAIL_URL = "https://www.imobiliare.ro/vanzare-apartamente/bucuresti/floreasca/apartament-X1A2B3"

IMOBILIARE_DETAIL = """
<html>
<head><title>Apartament 2 camere Floreasca | imobiliare.ro</title></head>
<body>
  <h1 class="titlu-anunt">Apartament 2 camere, Floreasca</h1>
  <div class="pret-mare">125.000 EUR</div>
  <ul class="caracteristici">
    <li>Suprafață utilă: 54,5 mp</li>
    <li>Număr camere: 2</li>
    <li>Etaj: 3 (din 8)</li>
    <li>An construcție: 1985</li>
  </ul>
  <div class="localizare-text">Bucuresti, zona Floreasca</div>
  <div class="gallery">
    <img src="https://cdn.imobiliare.ro/1.jpg">
    <img data-src="/img/2.jpg">
    <img src="/img/placeholder.png">
  </div>
  <script>var harta = {"lat": 44.4601, "lng": 26.0982, "zoom": 15};</script>
</body></html>
"""

IMOBILIARE_MICRODATA = """
<html><body>
  <h1 itemprop="name">Apartament 3 camere Drumul Taberei</h1>
  <div><span itemprop="price" content="450000">450.000</span> <meta itemprop="priceCurrency" content="RON"></div>
  <span itemprop="floorSize">62 mp</span>
  <span itemprop="numberOfRooms">3</span>
  <div itemprop="address">Bucuresti, Drumul Taberei</div>
</body></html>
"""

OLX_LIST_URL = "https://www.olx.ro/imobiliare/apartamente-garsoniere-de-vanzare/"

OLX_LIST = """
<html><body>
  <div data-cy="l-card">
    <a class="css-rc5s2u" href="/d/oferta/apartament-2-camere-tineretului-IDabc1.html">Apartament</a>
  </div>
  <div data-cy="l-card">
    <a data-cy="ad-card-title" href="/d/oferta/garsoniera-militari-IDdef2.html"><h6>Garsoniera</h6></a>
  </div>
  <div data-cy="l-card">
    <a data-cy="ad-card-title" href="https://www.autovit.ro/d/oferta/dacia-logan-IDxyz.html">Autovit</a>
  </div>
  <a href="/imobiliare/">Imobiliare</a>
  <a data-testid="pagination-forward" href="/imobiliare/apartamente-garsoniere-de-vanzare/?page=2">Inainte</a>
</body></html>
"""

OLX_DETAIL_URL = "https://www.olx.ro/d/oferta/apartament-2-camere-tineretului-IDabc1.html"

OLX_DETAIL = """
<html><body>
  <h1 data-cy="ad_title">Apartament 2 camere Tineretului</h1>
  <div data-testid="ad-price-container"><h3>89 500 €</h3></div>
  <ul>
    <li data-cy="ad-parameters-item"><p>Suprafata utila</p><p>52 m²</p></li>
    <li data-cy="ad-parameters-item"><p>Compartimentare: Decomandat</p></li>
    <li data-cy="ad-parameters-item"><p>Etaj: Etaj 4</p></li>
    <li data-cy="ad-parameters-item"><p>An constructie: 1978</p></li>
    <li data-cy="ad-parameters-item"><p>Numar camere: 2 camere</p></li>
  </ul>
  <div data-cy="ad_location"><p>Bucuresti, Sectorul 4</p></div>
  <div data-cy="adPhotos-slider">
    <img src="https://ireland.apollo.olxcdn.com/v1/files/abc/image;s=1000x700">
    <img src="https://ireland.apollo.olxcdn.com/v1/files/def/image;s=1000x700">
  </div>
  <script type="application/ld+json">
    {"@type": "Product", "offers": {"@type": "Offer", "price": 89500,
     "geo": {"latitude": 44.41, "longitude": 26.11}}}
  </script>
</body></html>
"""

STORIA_LIST_URL = "https://www.storia.ro/ro/rezultate/vanzare/apartament/bucuresti"

STORIA_LIST = """
<html><body>
  <a data-cy="listing-item-link" href="/ro/oferta/apartament-3-camere-dristor-IDabc">Apartament</a>
  <a href="https://www.storia.ro/ro/oferta/garsoniera-berceni-IDdef">Garsoniera</a>
  <a href="/ro/oferta/apartament-3-camere-dristor-IDabc">Apartament (poza)</a>
  <a href="https://www.olx.ro/d/oferta/apartament-IDolx.html">Promovat</a>
  <a data-cy="pagination.next" href="/ro/rezultate/vanzare/apartament/bucuresti?page=2">Următoarea</a>
</body></html>
"""

STORIA_DETAIL_URL = "https://www.storia.ro/ro/oferta/apartament-3-camere-dristor-IDabc"

STORIA_DETAIL = """
<html><body>
  <h1 data-cy="adPageAdTitle">Apartament 3 camere Dristor</h1>
  <strong data-cy="adPageHeaderPrice">149 000 €</strong>
  <a data-cy="adPageHeaderLocation">Bucuresti, Sectorul 3, Dristor</a>
  <div aria-label="Suprafață"><div>Suprafață</div><div>68 m²</div></div>
  <div aria-label="Număr de camere"><div>Număr de camere</div><div>3</div></div>
  <div aria-label="Etaj"><div>Etaj</div><div>2/4</div></div>
  <div aria-label="An construcție"><div>An construcție</div><div>1972</div></div>
  <div data-cy="mosaic-gallery">
    <picture>
      <img src="https://img.storia.ro/a/small.jpg"
           srcset="https://img.storia.ro/a/640.jpg 640w, https://img.storia.ro/a/1280.jpg 1280w">
    </picture>
    <img src="https://img.storia.ro/thumbnail/b.jpg">
  </div>
  <script id="__NEXT_DATA__" type="application/json">
    {"ad": {"location": {"coordinates": {"latitude": 44.42, "longitude": 26.14}}}}
  </script>
</body></html>
"""

SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://www.imobiliare.ro/sitemap-vanzare-1.xml</loc></sitemap>
  <sitemap><loc>https://www.imobiliare.ro/sitemap-vanzare-2.xml</loc></sitemap>
</sitemapindex>
"""

SITEMAP_URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://www.imobiliare.ro/vanzare-apartamente/bucuresti/apartament-A1</loc></url>
  <url><loc>https://www.imobiliare.ro/inchirieri-apartamente/bucuresti/apartament-B2</loc></url>
  <url><loc>https://www.imobiliare.ro/vanzare-case-vile/ilfov/casa-C3</loc></url>
  <url><loc>https://www.imobiliare.ro/vanzare-apartamente/bucuresti/apartament-A1</loc></url>
</urlset>
"""


class TestImobiliareAdapter:

    def test_discover_keeps_own_listing_links(self):
        result = ImobiliareAdapter().discover(IMOBILIARE_LIST, IMOBILIARE_LIST_URL)

        assert result.links == [
            "https://www.imobiliare.ro/vanzare-apartamente/bucuresti/floreasca/apartament-de-vanzare-2-camere-X1A2B3",
            "https://www.imobiliare.ro/vanzare-garsoniere/bucuresti/titan/garsoniera-de-vanzare-X9Z8Y7",
        ]
        assert result.next_page == "https://www.imobiliare.ro/vanzare-apartamente/bucuresti?pagina=2"

    def test_extract_characteristics_list(self):
        listing = ImobiliareAdapter().extract(IMOBILIARE_DETAIL, IMOBILIARE_DETAIL_URL)

        assert listing.title == "Apartament 2 camere, Floreasca"
        assert listing.price == 125000
        assert listing.currency == "EUR"
        assert listing.area_m2 == 54.5
        assert listing.rooms == 2
        assert listing.floor_raw == "3 (din 8)"
        assert listing.year_built == 1985
        assert listing.address_raw == "Bucuresti, zona Floreasca"
        assert (listing.lat, listing.lng) == (44.4601, 26.0982)
        assert listing.photos == [
            "https://cdn.imobiliare.ro/1.jpg",
            "https://www.imobiliare.ro/img/2.jpg",
        ]
        assert listing.source_meta == {"via": "imobiliare.ro"}

    def test_extract_microdata(self):
        listing = ImobiliareAdapter().extract(IMOBILIARE_MICRODATA, IMOBILIARE_DETAIL_URL)

        assert listing.title == "Apartament 3 camere Drumul Taberei"
        assert listing.price == 450000
        assert listing.currency == "RON"
        assert listing.area_m2 == 62
        assert listing.rooms == 3
        assert listing.address_raw == "Bucuresti, Drumul Taberei"
        assert listing.lat is None

    def test_page_without_listing_fields_raises(self):
        with pytest.raises(ExtractionError):
            ImobiliareAdapter().extract("<html><body><p>Anunt expirat</p></body></html>", IMOBILIARE_DETAIL_URL)


class TestOlxAdapter:

    def test_discover_keeps_real_estate_ads_only(self):
        result = OlxAdapter().discover(OLX_LIST, OLX_LIST_URL)

        assert sorted(result.links) == [
            "https://www.olx.ro/d/oferta/apartament-2-camere-tineretului-IDabc1.html",
            "https://www.olx.ro/d/oferta/garsoniera-militari-IDdef2.html",
        ]
        assert result.next_page == "https://www.olx.ro/imobiliare/apartamente-garsoniere-de-vanzare/?page=2"

    def test_extract_parameters(self):
        listing = OlxAdapter().extract(OLX_DETAIL, OLX_DETAIL_URL)

        assert listing.title == "Apartament 2 camere Tineretului"
        assert listing.price == 89500
        assert listing.currency == "EUR"
        assert listing.area_m2 == 52
        assert listing.rooms == 2
        assert listing.floor_raw == "Etaj 4"
        assert listing.year_built == 1978
        assert listing.address_raw == "Bucuresti, Sectorul 4"
        assert (listing.lat, listing.lng) == (44.41, 26.11)
        assert listing.photos == [
            "https://ireland.apollo.olxcdn.com/v1/files/abc/image",
            "https://ireland.apollo.olxcdn.com/v1/files/def/image",
        ]

    def test_price_defaults_to_lei(self):
        html = '<html><body><h1 data-cy="ad_title">Casa</h1><h3 data-testid="ad-price-container">320 000</h3></body></html>'

        listing = OlxAdapter().extract(html, OLX_DETAIL_URL)

        assert listing.price == 320000
        assert listing.currency == "RON"


class TestStoriaAdapter:

    def test_discover_deduplicates_and_drops_other_portals(self):
        result = StoriaAdapter().discover(STORIA_LIST, STORIA_LIST_URL)

        assert result.links == [
            "https://www.storia.ro/ro/oferta/apartament-3-camere-dristor-IDabc",
            "https://www.storia.ro/ro/oferta/garsoniera-berceni-IDdef",
        ]
        assert result.next_page == "https://www.storia.ro/ro/rezultate/vanzare/apartament/bucuresti?page=2"

    def test_extract_labelled_characteristics(self):
        listing = StoriaAdapter().extract(STORIA_DETAIL, STORIA_DETAIL_URL)

        assert listing.title == "Apartament 3 camere Dristor"
        assert listing.price == 149000
        assert listing.currency == "EUR"
        assert listing.area_m2 == 68
        assert listing.rooms == 3
        assert listing.floor_raw == "2/4"
        assert listing.year_built == 1972
        assert listing.address_raw == "Bucuresti, Sectorul 3, Dristor"
        assert (listing.lat, listing.lng) == (44.42, 26.14)
        # Largest srcset entry, thumbnails dropped
        assert listing.photos == ["https://img.storia.ro/a/1280.jpg"]

    def test_empty_page_raises(self):
        with pytest.raises(ExtractionError):
            StoriaAdapter().extract("   ", STORIA_DETAIL_URL)


class TestSitemaps:

    def test_is_sitemap_url(self):
        assert is_sitemap_url("https://www.olx.ro/sitemap.xml")
        assert is_sitemap_url("https://www.storia.ro/sitemaps/ads-1.xml")
        assert not is_sitemap_url("https://www.storia.ro/ro/oferta/apartament-IDabc")

    def test_index_lists_child_sitemaps(self):
        result = parse_sitemap(SITEMAP_INDEX, "/vanzare-")

        assert result.links == []
        assert result.sitemaps == [
            "https://www.imobiliare.ro/sitemap-vanzare-1.xml",
            "https://www.imobiliare.ro/sitemap-vanzare-2.xml",
        ]

    def test_urlset_keeps_listing_urls_once(self):
        result = parse_sitemap(SITEMAP_URLSET, "/vanzare-")

        assert result.links == [
            "https://www.imobiliare.ro/vanzare-apartamente/bucuresti/apartament-A1",
            "https://www.imobiliare.ro/vanzare-case-vile/ilfov/casa-C3",
        ]
        assert result.sitemaps == []

    def test_sitemap_without_namespace(self):
        xml = "<urlset><url><loc>https://www.storia.ro/ro/oferta/x-ID1</loc></url></urlset>"

        assert parse_sitemap(xml, "/oferta/").links == ["https://www.storia.ro/ro/oferta/x-ID1"]

    def test_invalid_xml_raises(self):
        with pytest.raises(ExtractionError):
            parse_sitemap("<html><body>not a sitemap", "/oferta/")

    def test_adapter_keeps_own_domain_sitemap_links(self):
        xml = SITEMAP_URLSET.replace(
            "</urlset>",
            "<url><loc>https://partener.ro/vanzare-apartamente/x</loc></url></urlset>",
        )

        result = ImobiliareAdapter().discover(xml, "https://www.imobiliare.ro/sitemap-vanzare-1.xml")

        assert len(result.links) == 2
        assert all(link.startswith("https://www.imobiliare.ro/") for link in result.links)


class TestRegistry:

    @pytest.mark.parametrize(
        "url,adapter_class",
        [
            (IMOBILIARE_DETAIL_URL, ImobiliareAdapter),
            (OLX_DETAIL_URL, OlxAdapter),
            ("https://olx.ro/d/oferta/casa-ID9.html", OlxAdapter),
            (STORIA_DETAIL_URL, StoriaAdapter),
        ],
    )
    def test_portals_have_their_own_adapter(self, url, adapter_class):
        assert isinstance(pick_adapter(url), adapter_class)


@pytest.mark.django_db
class TestSitemapCrawl:

    def test_urlset_enqueues_detail_jobs(self, scheduler, fake_site):
        sitemap_url = "https://www.imobiliare.ro/sitemap-vanzare-1.xml"
        fake_site.page(sitemap_url, SITEMAP_URLSET)
        crawl_queue.enqueue_url(sitemap_url, kind=CrawlJobKind.DISCOVER)

        counts = scheduler.run_batch(5)

        assert counts == {"claimed": 1, "discovered": 1}
        details = CrawlJob.objects.filter(kind=CrawlJobKind.DETAIL)
        assert sorted(details.values_list("normalized_url", flat=True)) == [
            "https://www.imobiliare.ro/vanzare-apartamente/bucuresti/apartament-A1",
            "https://www.imobiliare.ro/vanzare-case-vile/ilfov/casa-C3",
        ]
