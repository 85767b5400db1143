"""Unit tests for the profile store and parameter adaptation."""

import unittest

from adaptive_encoder.core.errors import ProfileNotFound
from adaptive_encoder.core.modules.analysis.content_classifier import ContentType
from adaptive_encoder.core.modules.config.parameter_adaptation import (
    CRF_MODIFIERS, adapt, adapt_bitrate, adapt_crf, complexity_bitrate_factor,
    refine_content_type,
)
from adaptive_encoder.core.modules.config.profiles import (
    PROFILES, format_x265_params, get_profile, list_profiles, parse_x265_params,
)


class TestProfiles(unittest.TestCase):

    def test_profile_store_contents(self):
        self.assertEqual(set(list_profiles()), {
            "4k", "4k_heavy_grain", "3d_cgi", "3d_complex", "anime", "classic_anime",
            "film", "heavy_grain", "light_grain", "action", "clean_digital",
        })

    def test_film_profile_values(self):
        film = get_profile("film")
        self.assertEqual((film.crf, film.bitrate_sdr, film.bitrate_hdr), (19.0, 4500, 5500))
        self.assertEqual(film.content_type, ContentType.FILM)
        self.assertEqual(film.pix_fmt, "yuv420p10le")
        self.assertEqual(film.codec_profile, "main10")

    def test_unknown_profile(self):
        with self.assertRaises(ProfileNotFound):
            get_profile("nope")

    def test_profiles_are_immutable(self):
        with self.assertRaises(TypeError):
            PROFILES["film"].x265_params["bframes"] = "2"

    def test_parse_normalizes_flags(self):
        params = parse_x265_params("no-sao:weightb:bframes=8:deblock=-1,-1")
        self.assertEqual(params, {"sao": "0", "weightb": "1", "bframes": "8", "deblock": "-1,-1"})
        self.assertEqual(format_x265_params(params), "sao=0:weightb=1:bframes=8:deblock=-1,-1")

    def test_4k_heavy_grain_vbv_keys(self):
        params = get_profile("4k_heavy_grain").x265_params
        self.assertEqual(params["vbv-maxrate"], "12000")
        self.assertEqual(params["vbv-bufsize"], "20000")


class TestAdaptation(unittest.TestCase):

    def test_heavy_grain_film_scenario(self):
        params = adapt(get_profile("film"), 62, ContentType.HEAVY_GRAIN, is_hdr=False)
        self.assertAlmostEqual(params.crf, 17.6)
        self.assertEqual(params.bitrate, 6030)
        self.assertEqual(params.preset, "slow")
        self.assertNotIn("colorprim", params.x265_params)

    def test_hdr_uses_hdr_base_and_crf_offset(self):
        params = adapt(get_profile("film"), 50, ContentType.FILM, is_hdr=True,
                       color_transfer="arib-std-b67")
        self.assertEqual(params.bitrate, 5500)
        self.assertAlmostEqual(params.crf, 21.0)
        self.assertEqual(params.x265_params["colorprim"], "bt2020")
        self.assertEqual(params.x265_params["transfer"], "arib-std-b67")
        self.assertEqual(params.x265_params["colormatrix"], "bt2020nc")
        self.assertEqual(params.x265_params["hdr10_opt"], "1")

    def test_hdr_offset_applies_before_modifiers(self):
        sdr = adapt(get_profile("film"), 62, ContentType.HEAVY_GRAIN, is_hdr=False)
        hdr = adapt(get_profile("film"), 62, ContentType.HEAVY_GRAIN, is_hdr=True)
        self.assertAlmostEqual(hdr.crf - sdr.crf, 2.0)
        self.assertEqual(hdr.bitrate, adapt_bitrate(5500, 62, ContentType.HEAVY_GRAIN))

    def test_adapt_is_deterministic_and_pure(self):
        profile = get_profile("anime")
        before = dict(profile.x265_params)
        first = adapt(profile, 73.5, ContentType.ANIME, True)
        second = adapt(profile, 73.5, ContentType.ANIME, True)
        self.assertEqual(first, second)
        self.assertEqual(dict(profile.x265_params), before)

    def test_crf_always_in_bounds(self):
        for base in (10, 15, 19, 23, 30, 40):
            for score in (10, 25, 50, 75, 100):
                for content_type in CRF_MODIFIERS:
                    crf = adapt_crf(base, score, content_type)
                    self.assertGreaterEqual(crf, 15.0)
                    self.assertLessEqual(crf, 28.0)

    def test_bitrate_monotonic_in_score(self):
        for content_type in CRF_MODIFIERS:
            rates = [adapt_bitrate(4500, score, content_type) for score in range(10, 101)]
            self.assertEqual(rates, sorted(rates))

    def test_bitrate_is_not_clamped(self):
        self.assertEqual(adapt_bitrate(100000, 100, ContentType.HEAVY_GRAIN), 162500)
        self.assertAlmostEqual(complexity_bitrate_factor(100), 1.3)

    def test_refinement(self):
        self.assertEqual(refine_content_type(ContentType.ANIME, 61), ContentType.CLASSIC_ANIME)
        self.assertEqual(refine_content_type(ContentType.ANIME, 60), ContentType.ANIME)
        self.assertEqual(refine_content_type(ContentType.FILM, 81), ContentType.HEAVY_GRAIN)
        self.assertEqual(refine_content_type(ContentType.ACTION, 99), ContentType.ACTION)


if __name__ == '__main__':
    unittest.main()
