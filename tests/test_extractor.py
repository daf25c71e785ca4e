import json
import unittest
from unittest import mock
from urllib.parse import quote

import extractor
from extractor import (
    LinkedDataStrategy,
    MarkupStrategy,
    MetaTagStrategy,
    PageStateStrategy,
    extract,
)

BASE = "https://www.avito.ru/moskva/telefony/iphone_123"


def page(head: str = "", body: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


def ld(payload) -> str:
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


class TestExtractorPrecedence(unittest.TestCase):
    def test_linked_data_beats_meta(self):
        html = page(
            head=ld({"@type": "Product", "name": "A"}) + '<meta property="og:title" content="B">',
        )
        result = extract(html, BASE)
        self.assertTrue(result.is_ok)
        self.assertEqual(result.title, "A")
        self.assertEqual(result.source, "linked-data")

    def test_fields_chosen_independently(self):
        html = page(
            head=ld({"@type": "Product", "name": "iPhone 13"})
            + '<meta property="og:image" content="/img/main.jpg">',
        )
        result = extract(html, BASE)
        self.assertEqual(result.title, "iPhone 13")
        self.assertEqual(result.image, "https://www.avito.ru/img/main.jpg")

    def test_page_state_beats_meta(self):
        state = {"item": {"title": "From state", "images": [{"url": "https://img.avito.st/1.jpg"}]}}
        html = page(
            head='<meta property="og:title" content="From meta">',
            body=f"<script>window.__initialData__ = {json.dumps(state)};</script>",
        )
        result = extract(html, BASE)
        self.assertEqual(result.title, "From state")
        self.assertEqual(result.image, "https://img.avito.st/1.jpg")
        self.assertEqual(result.source, "page-state")

    def test_meta_beats_markup(self):
        html = page(
            head='<title>Doc title</title><meta name="og:title" content="Meta title">',
            body='<img src="/a.png">',
        )
        result = extract(html, BASE)
        self.assertEqual(result.title, "Meta title")
        self.assertEqual(result.image, "https://www.avito.ru/a.png")


class TestStrategies(unittest.TestCase):
    def _doc(self, html):
        return extractor.Document(soup=extractor.BeautifulSoup(html, "lxml"), html=html, base_url=BASE)

    def test_linked_data_graph_and_nested_image(self):
        payload = {"@graph": [
            {"@type": "BreadcrumbList", "itemListElement": [{"name": "Home"}]},
            {"@type": ["Product"], "headline": "  Sofa \n for sale ", "image": {"contentUrl": "//img.avito.st/s.jpg"}},
        ]}
        candidate = LinkedDataStrategy().try_extract(self._doc(page(head=ld(payload))))
        self.assertEqual(candidate.title, "Sofa for sale")
        self.assertEqual(candidate.image, "https://img.avito.st/s.jpg")

    def test_linked_data_prefers_shallow_name(self):
        payload = {"@type": "Product", "brand": {"name": "Apple"}, "name": "iPhone 13 Pro"}
        candidate = LinkedDataStrategy().try_extract(self._doc(page(head=ld(payload))))
        self.assertEqual(candidate.title, "iPhone 13 Pro")

    def test_linked_data_malformed_reports_miss(self):
        html = page(head='<script type="application/ld+json">{not json</script>')
        candidate = LinkedDataStrategy().try_extract(self._doc(html))
        self.assertIsNone(candidate.title)
        self.assertIn("not valid JSON", candidate.miss)

    def test_page_state_url_encoded_string(self):
        state = {"buyerItem": {"item": {"title": "Велосипед", "imageUrls": ["https://img.avito.st/b.jpg"]}}}
        encoded = quote(json.dumps(state, ensure_ascii=False))
        html = page(body=f'<script>window.__initialData__ = "{encoded}" || {{}};</script>')
        candidate = PageStateStrategy().try_extract(self._doc(html))
        self.assertEqual(candidate.title, "Велосипед")

    def test_page_state_next_data(self):
        data = {"props": {"pageProps": {"ad": {"title": "Next ad", "photo": "/p/1.webp"}}}}
        html = page(body=f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>')
        candidate = PageStateStrategy().try_extract(self._doc(html))
        self.assertEqual(candidate.title, "Next ad")
        self.assertEqual(candidate.image, "https://www.avito.ru/p/1.webp")

    def test_page_state_missing(self):
        candidate = PageStateStrategy().try_extract(self._doc(page(body="<script>var x = 1;</script>")))
        self.assertEqual(candidate.miss, "no page-state blob")

    def test_meta_secure_image_variant(self):
        html = page(head='<meta property="og:title" content="T">'
                         '<meta property="og:image:secure_url" content="https://img.avito.st/x.jpg">')
        candidate = MetaTagStrategy().try_extract(self._doc(html))
        self.assertEqual(candidate.image, "https://img.avito.st/x.jpg")

    def test_markup_skips_embedded_images(self):
        html = page(
            head="<title> Old bike </title>",
            body='<img src="data:image/png;base64,AAAA">'
                 '<img src="blob:https://avito.ru/123">'
                 '<img data-src="/lazy/2.jpg">',
        )
        candidate = MarkupStrategy().try_extract(self._doc(html))
        self.assertEqual(candidate.title, "Old bike")
        self.assertEqual(candidate.image, "https://www.avito.ru/lazy/2.jpg")

    def test_markup_srcset(self):
        html = page(body='<h1>Heading</h1><img srcset="/s/1x.jpg 1x, /s/2x.jpg 2x">')
        candidate = MarkupStrategy().try_extract(self._doc(html))
        self.assertEqual(candidate.title, "Heading")
        self.assertEqual(candidate.image, "https://www.avito.ru/s/1x.jpg")


class TestDegradedExtraction(unittest.TestCase):
    def test_no_title_is_degraded_with_warnings(self):
        result = extract(page(body='<img src="/only-image.jpg">'), BASE)
        self.assertFalse(result.is_ok)
        self.assertEqual(result.reason, "parse-failed")
        self.assertEqual(len(result.warnings), 4)
        for name in ("linked-data", "page-state", "meta-tags", "markup"):
            self.assertTrue(any(w.startswith(name) for w in result.warnings), name)

    def test_missing_image_is_not_a_failure(self):
        result = extract(page(head="<title>Just a title</title>"), BASE)
        self.assertTrue(result.is_ok)
        self.assertIsNone(result.image)

    def test_empty_html(self):
        result = extract("", BASE)
        self.assertFalse(result.is_ok)

    def test_blank_srcset_keeps_meta_title(self):
        for srcset in (" ", ", ", ""):
            html = page(head='<meta property="og:title" content="Good title">',
                        body=f'<img srcset="{srcset}">')
            result = extract(html, BASE)
            self.assertTrue(result.is_ok, repr(srcset))
            self.assertEqual(result.title, "Good title")
            self.assertIsNone(result.image)

    def test_srcset_with_leading_comma(self):
        html = page(head="<title>Chair</title>", body='<img srcset=", /c/2x.jpg 2x">')
        result = extract(html, BASE)
        self.assertEqual(result.image, "https://www.avito.ru/c/2x.jpg")

    def test_crashing_strategy_does_not_lose_other_results(self):
        class Broken(extractor.Strategy):
            name = "broken"

            def try_extract(self, doc):
                raise IndexError("list index out of range")

        html = page(head='<meta property="og:title" content="Good title">')
        result = extract(html, BASE, strategies=(Broken(), MetaTagStrategy()))
        self.assertTrue(result.is_ok)
        self.assertEqual(result.title, "Good title")

        failed = extract(page(), BASE, strategies=(Broken(), MarkupStrategy()))
        self.assertEqual(failed.reason, "parse-failed")
        self.assertTrue(any(w.startswith("broken: IndexError") for w in failed.warnings))

        crashed = extract(page(), BASE, strategies=(Broken(),))
        self.assertEqual(crashed.reason, "parse-exception")

    def test_unexpected_exception_is_contained(self):
        with mock.patch.object(extractor, "BeautifulSoup", side_effect=RuntimeError("boom")):
            result = extract(page(head="<title>x</title>"), BASE)
        self.assertFalse(result.is_ok)
        self.assertEqual(result.reason, "parse-exception")
        self.assertIn("boom", result.warnings[0])


if __name__ == "__main__":
    unittest.main()
