"""Tests for dork query synthesis and rendering."""

from jobdorker.dorks import JOB_SITE_SCOPES, QuerySynthesizer, keyword_variations, render_query
from jobdorker.models import DorkQuery, ExperienceLevel, SearchCriteria

# ---------------------------------------------------------------------------
# TestRenderQuery
# ---------------------------------------------------------------------------


class TestRenderQuery:
    def test_full_rendering(self) -> None:
        query = DorkQuery(
            site="indeed.com",
            keywords=("python", "data engineer"),
            exclude_keywords=("senior", "team lead"),
            file_types=("pdf", "doc"),
            custom_params=(("location", "New York"), ("inurl", "careers")),
        )
        assert render_query(query) == (
            'site:indeed.com python OR "data engineer" -senior -"team lead" '
            'filetype:pdf OR filetype:doc location:"New York" inurl:careers'
        )

    def test_modifiers_narrow_the_keywords(self) -> None:
        query = DorkQuery(
            site="remote.co",
            keywords=("python", "django"),
            modifiers=(("remote", "work from home"), ("salary:>90000",)),
        )
        assert render_query(query) == (
            'site:remote.co python OR django (remote OR "work from home") salary:>90000'
        )

    def test_unscoped_query(self) -> None:
        assert render_query(DorkQuery(keywords=("golang",))) == "golang"

    def test_already_quoted_phrase_not_requoted(self) -> None:
        assert render_query(DorkQuery(keywords=('"machine learning"',))) == '"machine learning"'


# ---------------------------------------------------------------------------
# TestKeywordVariations
# ---------------------------------------------------------------------------


class TestKeywordVariations:
    def test_singletons_then_pairs(self) -> None:
        assert keyword_variations(["a", "b", "c"]) == [
            ("a",), ("b",), ("c",), ("a", "b"), ("a", "c"), ("b", "c"),
        ]

    def test_bounded(self) -> None:
        assert len(keyword_variations([str(i) for i in range(8)])) == 10


# ---------------------------------------------------------------------------
# TestQuerySynthesizer
# ---------------------------------------------------------------------------


class TestQuerySynthesizer:
    def test_single_keyword_query_set(self) -> None:
        criteria = SearchCriteria(keywords=("python developer",))
        rendered = QuerySynthesizer().render(criteria)
        assert len(rendered) == len(JOB_SITE_SCOPES) + 2
        assert rendered[0] == 'site:linkedin.com/jobs "python developer"'
        assert [r.split()[0] for r in rendered[:10]] == [f"site:{s}" for s in JOB_SITE_SCOPES]
        assert rendered[10] == '"python developer" OR "job description" OR "job posting" filetype:pdf'
        assert rendered[11] == '"python developer" OR careers OR jobs OR opportunities inurl:careers'

    def test_remote_and_salary_terms(self) -> None:
        criteria = SearchCriteria(keywords=("python",), remote=True, salary_min=100000, location="Boston")
        rendered = QuerySynthesizer().render(criteria)
        assert rendered[1] == 'site:indeed.com python (remote OR "work from home") salary:>100000'
        assert "location:" not in rendered[1]

    def test_location_when_not_remote(self) -> None:
        criteria = SearchCriteria(keywords=("python",), location="New York")
        assert QuerySynthesizer().render(criteria)[0] == 'site:linkedin.com/jobs python location:"New York"'

    def test_experience_synonyms(self) -> None:
        criteria = SearchCriteria(keywords=("python",), experience_level=ExperienceLevel.SENIOR)
        assert QuerySynthesizer().render(criteria)[0] == (
            'site:linkedin.com/jobs python (senior OR lead OR "5+ years" OR expert)'
        )

    def test_exclusions_on_every_query(self) -> None:
        criteria = SearchCriteria(keywords=("python",), exclude_keywords=("senior",))
        assert all("-senior" in q for q in QuerySynthesizer().render(criteria))

    def test_keyword_variations_are_deduplicated(self) -> None:
        criteria = SearchCriteria(keywords=("python", "django"))
        rendered = QuerySynthesizer().render(criteria)
        assert len(rendered) == len(set(rendered))
        # 12 base queries + 2 singleton variants x 3 scopes; the pair repeats the base
        assert len(rendered) == 18
        assert rendered[12:15] == [
            "site:linkedin.com/jobs python",
            "site:indeed.com python",
            "site:glassdoor.com python",
        ]

    def test_capped_at_twenty(self) -> None:
        criteria = SearchCriteria(keywords=("python", "django", "flask"))
        assert len(QuerySynthesizer().generate(criteria)) == 20

    def test_capped_at_max_results(self) -> None:
        criteria = SearchCriteria(keywords=("python",), max_results=5)
        assert len(QuerySynthesizer().generate(criteria)) == 5

    def test_configurable_cap(self) -> None:
        criteria = SearchCriteria(keywords=("python",))
        assert len(QuerySynthesizer(max_queries=3).generate(criteria)) == 3

    def test_custom_scopes(self) -> None:
        criteria = SearchCriteria(keywords=("python",))
        rendered = QuerySynthesizer(scopes=["jobs.lever.co"]).render(criteria)
        assert rendered[0] == "site:jobs.lever.co python"
        assert len(rendered) == 3

    def test_deterministic_and_criteria_untouched(self) -> None:
        criteria = SearchCriteria(keywords=("python", "django"), remote=True)
        synthesizer = QuerySynthesizer()
        assert synthesizer.render(criteria) == synthesizer.render(criteria)
        assert criteria.keywords == ("python", "django")
